"""
FastAPI Application Factory

Creates and configures the read API application.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from telecom_analytics.config import get_settings
from telecom_analytics.errors import SourceUnavailableError
from telecom_analytics.serving.api.middleware import RequestLoggingMiddleware
from telecom_analytics.serving.api.routes import (
    health_router,
    kpis_router,
    pipeline_router,
    views_router,
)

logger = structlog.get_logger(__name__)


async def source_unavailable_handler(request: Request, exc: SourceUnavailableError) -> JSONResponse:
    logger.error("Source unavailable while serving request", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "operation": exc.operation},
    )


def create_api_app(lifespan: Optional[Any] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Optional lifespan context manager

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Telecom Analytics API",
        description="Derived customer, plan, revenue and risk metrics",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # Add CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(SourceUnavailableError, source_unavailable_handler)

    app.include_router(health_router, tags=["Health"])
    app.include_router(views_router, prefix="/api/v1/views", tags=["Views"])
    app.include_router(kpis_router, prefix="/api/v1/kpis", tags=["KPIs"])
    app.include_router(pipeline_router, prefix="/api/v1/pipeline", tags=["Pipeline"])

    return app
