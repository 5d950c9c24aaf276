"""Write path for the archive cache."""

import logging
import mimetypes
import os
import pathlib
import typing

from archive_cache import models, settings

from . import client, errors

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

Buffer = bytes | bytearray | memoryview


class Readable(typing.Protocol):
    def read(self, size: int = -1, /) -> typing.Any: ...


Payload = Buffer | os.PathLike[str] | Readable


async def store(
    item_id: str,
    payload: Payload,
    *,
    filename: str | None = None,
    content_type: str | None = None,
    controller: client.StorageClient | None = None,
) -> models.CacheEntry:
    """Store a payload in the cache and return the committed entry.

    In-memory buffers are written with a single ``put_object``. Paths and
    readable streams are uploaded in parts so memory use stays bounded
    regardless of the payload size. The object is fully committed when
    this returns.

    Concurrent stores to the same key are not coordinated; the last one
    to complete wins.

    Args:
        item_id: Media item the payload belongs to
        payload: Bytes, a filesystem path, or a binary file-like object
        filename: Store under the sanitized filename instead of the
            item's archive key
        content_type: MIME type (derived from the key when omitted)
        controller: Storage client (the process singleton when omitted)

    Raises:
        NotInitialized: If storage is not ready.
        InvalidKey: If no usable key can be derived.
        UploadError: If the object store rejects or fails the upload.

    """
    if controller is None:
        controller = client.StorageClient.get_instance()
    key = controller.key_for(item_id, filename)
    config = typing.cast(settings.CloudStorage, controller.config)
    if content_type is None:
        content_type = _content_type(
            key, filename, config.archive_content_type
        )

    if not isinstance(payload, Buffer | os.PathLike) and not hasattr(
        payload, 'read'
    ):
        raise TypeError(
            f'Unsupported payload type {type(payload).__name__!r}, '
            'expected bytes, a path or a readable binary stream'
        )

    size: int | None = None
    try:
        if isinstance(payload, Buffer):
            size = len(payload)
            await controller.put_object(key, payload, content_type)
        elif isinstance(payload, os.PathLike):
            path = pathlib.Path(payload)
            size = path.stat().st_size
            with path.open('rb') as handle:
                await controller.multipart_upload(key, handle, content_type)
        else:
            await controller.multipart_upload(key, payload, content_type)
    except errors.StorageError:
        raise
    except Exception as err:
        LOGGER.error(
            'Failed to cache item %s to S3 as %s: %s', item_id, key, err
        )
        raise errors.UploadError(key) from err

    LOGGER.info('Cached item %s to S3: %s', item_id, key)
    return models.CacheEntry(
        item_id=item_id,
        key=key,
        size=size,
        content_type=content_type,
    )


def _content_type(
    key: str,
    filename: str | None,
    archive_content_type: str,
) -> str:
    if filename is None:
        return archive_content_type
    guessed, _encoding = mimetypes.guess_type(key)
    return guessed or DEFAULT_CONTENT_TYPE
