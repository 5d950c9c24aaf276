import fastapi

from .cache import cache_router
from .status import status_router

routers: list[fastapi.APIRouter] = [
    cache_router,
    status_router,
]

__all__ = ['routers']
