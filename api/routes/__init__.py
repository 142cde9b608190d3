"""API route modules."""

from .admin_visibility_routes import router as admin_visibility_router
from .health_routes import router as health_router
from .journeys_routes import router as journeys_router

__all__ = [
    "admin_visibility_router",
    "health_router",
    "journeys_router",
]
