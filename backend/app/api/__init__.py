"""API router composition for the backend.

The module assembles individual route groups into a single `api_router` that can be mounted on the app.
"""

from fastapi import APIRouter

from app.api.routes import clusters_router, participants_router

api_router = APIRouter()
api_router.include_router(participants_router)
api_router.include_router(clusters_router)

__all__ = ["api_router"]
