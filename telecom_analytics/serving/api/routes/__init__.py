"""
API Routes Module
"""
from .health import router as health_router
from .kpis import router as kpis_router
from .pipeline import router as pipeline_router
from .views import router as views_router

__all__ = [
    "health_router",
    "kpis_router",
    "pipeline_router",
    "views_router",
]
