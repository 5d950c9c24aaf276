"""Archive cache endpoints."""

import logging
import typing

import fastapi
from fastapi import responses

from archive_cache import models, settings, storage

LOGGER = logging.getLogger(__name__)

cache_router = fastapi.APIRouter(
    prefix='/items/{item_id}/cache',
    tags=['Cache'],
)

_STATUS_CODES: dict[type[storage.StorageError], int] = {
    storage.NotInitialized: 503,
    storage.InvalidKey: 400,
    storage.UploadError: 502,
    storage.SignError: 502,
}

Filename = typing.Annotated[
    str | None,
    fastapi.Query(description='Free-form filename to cache under'),
]


def http_error(err: storage.StorageError) -> fastapi.HTTPException:
    """Translate a storage error into an HTTP error response."""
    status_code = 500
    for error_type, code in _STATUS_CODES.items():
        if isinstance(err, error_type):
            status_code = code
            break
    return fastapi.HTTPException(status_code=status_code, detail=str(err))


@cache_router.post('', status_code=201)
async def store_item(
    item_id: str,
    file: fastapi.UploadFile,
    filename: typing.Annotated[str | None, fastapi.Form()] = None,
    content_type: typing.Annotated[str | None, fastapi.Form()] = None,
) -> models.CacheEntry:
    """Cache an archive or named file for an item.

    The upload is streamed to object storage in parts, so large archives
    do not have to fit in memory. Without ``filename`` the file is
    stored as the item's archive.

    Returns:
        The storage key and filename the payload was committed under.

    Raises:
        400: If no usable key can be derived from the filename.
        502: If the object store rejects the upload.
        503: If cloud storage is not available.

    """
    try:
        entry = await storage.store(
            item_id,
            file,
            filename=filename,
            content_type=content_type,
        )
    except storage.StorageError as err:
        raise http_error(err) from err
    finally:
        await file.close()

    if entry.size is None:
        entry.size = file.size
    return entry


@cache_router.get('')
async def get_item_status(
    item_id: str,
    filename: Filename = None,
) -> models.CacheStatus:
    """Report whether an item is cached.

    Lookup errors are logged and reported as not cached.

    Raises:
        400: If no usable key can be derived from the filename.
        503: If cloud storage is not available.

    """
    try:
        key = storage.key_for(item_id, filename)
        exists = await storage.exists(item_id, filename)
    except storage.StorageError as err:
        raise http_error(err) from err
    return models.CacheStatus(item_id=item_id, key=key, exists=exists)


@cache_router.get('/url')
async def get_item_url(
    item_id: str,
    filename: Filename = None,
    expires_in: typing.Annotated[
        int | None,
        fastapi.Query(ge=1, le=settings.MAX_SIGNED_URL_EXPIRY),
    ] = None,
) -> models.SignedUrl:
    """Return a time-limited URL for reading a cached item directly.

    Raises:
        404: If the item is not cached.
        502: If the object store could not confirm or sign the object.
        503: If cloud storage is not available.

    """
    if expires_in is None:
        expires_in = storage.default_expiry()
    key, url = await _signed_url(item_id, filename, expires_in)
    return models.SignedUrl(
        item_id=item_id,
        key=key,
        url=url,
        expires_in=expires_in,
    )


@cache_router.get('/download')
async def download_item(
    item_id: str,
    filename: Filename = None,
) -> responses.RedirectResponse:
    """Redirect to a signed URL for a cached item.

    Raises:
        404: If the item is not cached.

    """
    _key, url = await _signed_url(item_id, filename, None)
    return responses.RedirectResponse(url, status_code=307)


async def _signed_url(
    item_id: str,
    filename: str | None,
    expires_in: int | None,
) -> tuple[str, str]:
    try:
        key = storage.key_for(item_id, filename)
        url = await storage.signed_url(item_id, filename, expires_in)
    except storage.StorageError as err:
        raise http_error(err) from err
    if url is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail=f'Item {item_id!r} is not cached',
        )
    return key, url
