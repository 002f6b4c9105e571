"""API routers."""

from app.routers.coverage import router as coverage_router
from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router

__all__ = [
    "coverage_router",
    "health_router",
    "metrics_router",
]
