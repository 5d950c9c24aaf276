"""Storage status endpoints."""

import logging
import typing

import fastapi

from archive_cache import models, storage

LOGGER = logging.getLogger(__name__)

status_router = fastapi.APIRouter(prefix='/storage', tags=['Storage'])


@status_router.get('/status')
async def get_status() -> models.StorageStatus:
    """Report the state of the object storage connection."""
    return storage.status()


@status_router.post('/initialize')
async def initialize(
    reset: typing.Annotated[bool, fastapi.Query()] = False,
) -> models.StorageStatus:
    """(Re)initialize object storage from the current settings.

    A ready connection is left untouched unless ``reset`` is set, in
    which case it is closed and rebuilt so changed settings take effect.

    Raises:
        500: If storage is enabled but incompletely configured.
        502: If the configured bucket cannot be reached.

    """
    if reset:
        LOGGER.info('Resetting storage connection')
        await storage.aclose()
    try:
        await storage.initialize()
    except storage.ConfigurationError as err:
        raise fastapi.HTTPException(status_code=500, detail=str(err)) from err
    except storage.ConnectivityError as err:
        raise fastapi.HTTPException(status_code=502, detail=str(err)) from err
    return storage.status()
