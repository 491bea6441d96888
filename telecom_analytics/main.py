"""
FastAPI Production Application

Main entry point for the Telecom Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError
import structlog

from telecom_analytics.config import get_settings
from telecom_analytics.config.logging import configure_logging
from telecom_analytics.database.connection import close_database, init_database
from telecom_analytics.serving.api.main import create_api_app
from telecom_analytics.serving.cache import close_redis, init_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Configure logging first
    configure_logging()

    logger.info("Starting Telecom Analytics API", environment=get_settings().app_env)

    # Database is required; derived tables are created when configured
    await init_database()

    # Redis only backs the view cache
    try:
        await init_redis()
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable, view caching disabled", error=str(e))

    yield

    # Cleanup
    logger.info("Shutting down...")
    await close_database()
    await close_redis()


app = create_api_app(lifespan=lifespan)


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    settings = get_settings()
    return {
        "name": "Telecom Analytics API",
        "version": settings.version,
        "environment": settings.app_env,
        "pipeline": settings.pipeline.name,
        "documentation": "/docs",
    }
