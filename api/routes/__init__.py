"""API route modules."""

from routes.habits_routes import router as habits_router
from routes.health_routes import router as health_router
from routes.reports_routes import router as reports_router

__all__ = [
    "habits_router",
    "health_router",
    "reports_router",
]
