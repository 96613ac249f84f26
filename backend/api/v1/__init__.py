"""Version 1 API routers."""

from fastapi import APIRouter

from .activity import router as activity_router
from .health import router as health_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health_router)
api_router.include_router(activity_router)

__all__ = ["api_router"]
