import contextlib
import logging
import typing

import fastapi

from archive_cache import endpoints, storage, version

LOGGER = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def fastapi_lifespan(
    *_args: typing.Any, **_kwargs: typing.Any
) -> typing.AsyncIterator[None]:
    """This is invoked by FastAPI for us to control startup and shutdown."""
    try:
        await storage.initialize()
    except (storage.ConfigurationError, storage.ConnectivityError) as err:
        # Cache endpoints report 503 until POST /storage/initialize succeeds
        LOGGER.error('Storage initialization failed: %s', err)

    LOGGER.debug('Startup complete')
    yield
    try:
        await storage.aclose()
    except Exception as err:  # noqa: BLE001 - shutdown must not raise
        LOGGER.warning('Storage shutdown failed: %s', err)
    LOGGER.debug('Clean shutdown complete')


def create_app() -> fastapi.FastAPI:
    app = fastapi.FastAPI(
        title='Archive Cache',
        lifespan=fastapi_lifespan,
        version=version,
        redoc_url='/docs',
        docs_url=None,
    )

    for router in endpoints.routers:
        app.include_router(router)

    return app
