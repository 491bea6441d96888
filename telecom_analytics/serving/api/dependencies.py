"""
API Dependencies

FastAPI dependency providers for settings, sessions, the source accessor
and the shared refresh orchestrator. Tests swap them through
app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.config import PipelineSettings, get_settings
from telecom_analytics.database.connection import get_session_factory
from telecom_analytics.pipeline.orchestrator import RefreshOrchestrator
from telecom_analytics.sources.accessor import SourceAccessor, SqlSourceAccessor


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Read-only session for the materialized tables"""
    async with session_factory() as session:
        yield session


def get_source(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: PipelineSettings = Depends(get_pipeline_settings),
) -> SourceAccessor:
    return SqlSourceAccessor(session_factory, timeout_seconds=settings.source_timeout_seconds)


def get_orchestrator(
    request: Request,
    source: SourceAccessor = Depends(get_source),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
    settings: PipelineSettings = Depends(get_pipeline_settings),
) -> RefreshOrchestrator:
    """One orchestrator per application, so the last run result survives requests"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = RefreshOrchestrator(source, session_factory, settings)
        request.app.state.orchestrator = orchestrator
    return orchestrator
