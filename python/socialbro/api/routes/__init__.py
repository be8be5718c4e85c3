"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from socialbro.api.routes.admin import router as admin_router
from socialbro.api.routes.health import router as health_router
from socialbro.api.routes.keys import router as keys_router
from socialbro.api.routes.me import router as me_router
from socialbro.api.routes.searches import router as searches_router
from socialbro.api.routes.tiktok import router as tiktok_router
from socialbro.api.routes.youtube import router as youtube_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(keys_router)
    api_router.include_router(youtube_router)
    api_router.include_router(tiktok_router)
    api_router.include_router(searches_router)
    api_router.include_router(admin_router)
    return api_router


__all__ = ["create_api_router"]
