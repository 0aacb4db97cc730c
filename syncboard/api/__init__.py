"""HTTP routers of the dashboard API."""

from fastapi import APIRouter

from .dashboard import router as dashboard_router
from .tracks import router as tracks_router


def build_router(base_path: str = "") -> APIRouter:
    router = APIRouter(prefix=base_path)
    router.include_router(dashboard_router)
    router.include_router(tracks_router)
    return router


__all__ = ["build_router", "dashboard_router", "tracks_router"]
