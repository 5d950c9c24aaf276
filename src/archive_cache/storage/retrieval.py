"""Existence checks and signed URL retrieval for cached objects.

The two lookups trade off differently on ambiguous errors. ``exists`` is
best-effort and reports ``False`` for anything it cannot confirm, while
``signed_url`` raises so that a transient failure is never mistaken for
an absent object.

"""

import logging
import typing

from botocore import exceptions as botocore_exceptions

from archive_cache import settings

from . import client, errors

LOGGER = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({'404', 'NoSuchKey', 'NotFound'})
SIGN_ERRORS = (
    botocore_exceptions.BotoCoreError,
    botocore_exceptions.ClientError,
)


def is_not_found(error: BaseException) -> bool:
    """Return True if ``error`` is an object store "no such key" error."""
    if not isinstance(error, botocore_exceptions.ClientError):
        return False
    response = error.response or {}
    code = str(response.get('Error', {}).get('Code') or '')
    status = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    return code in NOT_FOUND_CODES or status == 404


async def exists(
    item_id: str,
    *,
    filename: str | None = None,
    controller: client.StorageClient | None = None,
) -> bool:
    """Check whether an item is present in the cache.

    Errors other than "not found" are logged and reported as ``False``.

    Raises:
        NotInitialized: If storage is not ready.
        InvalidKey: If no usable key can be derived.

    """
    if controller is None:
        controller = client.StorageClient.get_instance()
    key = controller.key_for(item_id, filename)
    try:
        await controller.head_object(key)
    except botocore_exceptions.ClientError as err:
        if is_not_found(err):
            LOGGER.debug('Item %s not found in S3: %s', item_id, key)
            return False
        LOGGER.exception('Failed to check existence of %s in S3', key)
        return False
    except Exception:  # noqa: BLE001 - transport failures read as absent
        LOGGER.exception('Failed to check existence of %s in S3', key)
        return False
    return True


async def signed_url(
    item_id: str,
    *,
    filename: str | None = None,
    expires_in: int | None = None,
    controller: client.StorageClient | None = None,
) -> str | None:
    """Return a time-limited GET URL for a cached item.

    Args:
        item_id: Media item to look up
        filename: Look up the sanitized filename instead of the archive
        expires_in: URL lifetime in seconds (configured default if None)
        controller: Storage client (the process singleton when omitted)

    Returns:
        The presigned URL, or None if the object is not in the cache.

    Raises:
        NotInitialized: If storage is not ready.
        InvalidKey: If no usable key can be derived.
        SignError: If the probe or signing fails for any other reason.
        ValueError: If ``expires_in`` is out of range.

    """
    if controller is None:
        controller = client.StorageClient.get_instance()
    key = controller.key_for(item_id, filename)
    config = typing.cast(settings.CloudStorage, controller.config)
    if expires_in is None:
        expires_in = config.signed_url_expiry
    if not 1 <= expires_in <= settings.MAX_SIGNED_URL_EXPIRY:
        raise ValueError(
            f'expires_in must be between 1 and '
            f'{settings.MAX_SIGNED_URL_EXPIRY} seconds'
        )

    try:
        await controller.head_object(key)
    except botocore_exceptions.ClientError as err:
        if is_not_found(err):
            LOGGER.debug('Item %s not found in S3: %s', item_id, key)
            return None
        LOGGER.error('Failed to check %s before signing: %s', key, err)
        raise errors.SignError(key) from err
    except botocore_exceptions.BotoCoreError as err:
        LOGGER.error('Failed to check %s before signing: %s', key, err)
        raise errors.SignError(key) from err

    try:
        url = await controller.presign_get(key, expires_in)
    except SIGN_ERRORS as err:
        LOGGER.error('Failed to generate signed URL for %s: %s', key, err)
        raise errors.SignError(key) from err

    LOGGER.info(
        'Generated signed URL for %s (expires in %ds)', key, expires_in
    )
    return url
