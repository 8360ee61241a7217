from fastapi import APIRouter

from .health import router as health_router
from .me import router as me_router
from .sites import router as sites_router


api_router = APIRouter()

# Generation and remix are public; deploy and /me declare their own
# credential requirement per route.
api_router.include_router(health_router, tags=["health"])
api_router.include_router(sites_router)
api_router.include_router(me_router)
