"""Object storage cache tier for generated archives.

Offloads per-item archives and named media files to S3-compatible object
storage. Reads are served with presigned URLs so bytes never pass back
through this service.

"""

import logging

from archive_cache import models, settings

from . import client, retrieval, writer
from .client import ConnectionState
from .errors import (
    ConfigurationError,
    ConnectivityError,
    InvalidKey,
    NotInitialized,
    SignError,
    StorageError,
    UploadError,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    'ConfigurationError',
    'ConnectionState',
    'ConnectivityError',
    'InvalidKey',
    'NotInitialized',
    'SignError',
    'StorageError',
    'UploadError',
    'aclose',
    'default_expiry',
    'exists',
    'initialize',
    'key_for',
    'signed_url',
    'state',
    'status',
    'store',
]


async def initialize(
    config: settings.CloudStorage | None = None,
) -> ConnectionState:
    """Initialize the storage module.

    Creates the StorageClient singleton, validates the configuration and
    probes the configured bucket.

    """
    LOGGER.info('Initializing storage module')
    storage_client = client.StorageClient.get_instance()
    result = await storage_client.initialize(config)
    LOGGER.info('Storage module initialized (%s)', result.value)
    return result


async def aclose() -> None:
    """Clean up storage module resources."""
    LOGGER.info('Closing storage module')
    if client.StorageClient._instance is not None:
        await client.StorageClient._instance.aclose()
    client.StorageClient._instance = None
    LOGGER.info('Storage module closed')


def state() -> ConnectionState:
    return client.StorageClient.get_instance().state


def status() -> models.StorageStatus:
    """Summarize the storage connection for operators."""
    storage_client = client.StorageClient.get_instance()
    config = storage_client.config
    return models.StorageStatus(
        state=storage_client.state.value,
        enabled=bool(config and config.enabled),
        bucket=config.s3_bucket if config else None,
        region=config.s3_region if config else None,
    )


def default_expiry() -> int:
    """Return the configured default lifetime of signed URLs."""
    config = client.StorageClient.get_instance().config
    if config is None:
        return settings.DEFAULT_SIGNED_URL_EXPIRY
    return config.signed_url_expiry


def key_for(item_id: str, filename: str | None = None) -> str:
    """Return the key an item is (or would be) cached under."""
    return client.StorageClient.get_instance().key_for(item_id, filename)


async def store(
    item_id: str,
    payload: writer.Payload,
    *,
    filename: str | None = None,
    content_type: str | None = None,
) -> models.CacheEntry:
    """Store an archive or named file for an item.

    Args:
        item_id: Media item the payload belongs to
        payload: Bytes, a filesystem path, or a binary file-like object
        filename: Store under the sanitized filename
        content_type: MIME type of the payload

    Returns:
        The committed cache entry

    """
    return await writer.store(
        item_id,
        payload,
        filename=filename,
        content_type=content_type,
    )


async def exists(item_id: str, filename: str | None = None) -> bool:
    """Check whether an item is cached (best effort)."""
    return await retrieval.exists(item_id, filename=filename)


async def signed_url(
    item_id: str,
    filename: str | None = None,
    expires_in: int | None = None,
) -> str | None:
    """Generate a presigned GET URL for a cached item.

    Args:
        item_id: Media item to look up
        filename: Look up the sanitized filename instead of the archive
        expires_in: URL expiration time in seconds (default: 1 hour)

    Returns:
        Presigned URL string, or None when the item is not cached

    """
    return await retrieval.signed_url(
        item_id,
        filename=filename,
        expires_in=expires_in,
    )
