"""API routers package for the newspaper archive."""

from datetime import datetime

from fastapi import APIRouter

from .. import __version__
from .admin_router import router as admin_router
from .extraction_router import router as extraction_router
from .issues_router import router as issues_router


def create_api_router() -> APIRouter:
    """Create the main API router with all sub-routers."""
    router = APIRouter()

    router.include_router(issues_router, prefix="/issues", tags=["issues"])
    router.include_router(extraction_router, prefix="/extraction", tags=["extraction"])
    router.include_router(admin_router, prefix="/admin", tags=["admin"])

    @router.get("/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.utcnow().isoformat()
        }

    return router
