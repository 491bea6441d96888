"""
Prefect Workflow Orchestration - Scheduled Refresh

Runs the derived-metrics refresh on the configured cron schedule.
Retries are not configured: every run recomputes everything from source,
so the next scheduled run is the retry.
"""

from typing import Optional

from prefect import flow, get_run_logger, task
from redis.exceptions import RedisError

from telecom_analytics.config import get_settings
from telecom_analytics.config.logging import configure_logging
from telecom_analytics.database.connection import close_database, get_session_factory, init_database
from telecom_analytics.pipeline.orchestrator import RefreshOrchestrator
from telecom_analytics.serving.cache import close_redis, init_redis, kpis_cache, views_cache
from telecom_analytics.sources.accessor import SqlSourceAccessor


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="run_refresh",
    description="Run one full derived-metrics refresh",
)
async def run_refresh_task(strict_validation: Optional[bool] = None) -> dict:
    """Run the orchestrator and return its result"""
    logger = get_run_logger()
    settings = get_settings()

    session_factory = get_session_factory()
    orchestrator = RefreshOrchestrator(
        SqlSourceAccessor(session_factory, timeout_seconds=settings.pipeline.source_timeout_seconds),
        session_factory,
        settings.pipeline,
        strict_validation=strict_validation,
    )
    result = await orchestrator.run_refresh()

    report = result.validation_report
    logger.info(
        f"Refresh {result.run_id} finished with status {result.status.value} "
        f"({len(report.findings) if report else 0} findings)"
    )
    return result.to_dict()


@task(
    name="invalidate_view_cache",
    description="Drop cached views after a successful refresh",
)
async def invalidate_view_cache() -> int:
    """Invalidate cached views and KPIs if Redis is reachable"""
    logger = get_run_logger()

    try:
        await init_redis()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable, skipping cache invalidation: {e}")
        return 0

    try:
        return await views_cache.invalidate_all() + await kpis_cache.invalidate_all()
    finally:
        await close_redis()


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="scheduled_refresh",
    description="Scheduled full refresh of telecom derived metrics",
)
async def scheduled_refresh(strict_validation: Optional[bool] = None) -> dict:
    """
    Scheduled refresh flow.

    Steps:
    1. Run the refresh orchestrator
    2. Invalidate cached views when the run did not fail
    """
    logger = get_run_logger()
    configure_logging()

    await init_database()
    try:
        result = await run_refresh_task(strict_validation)
    finally:
        await close_database()

    if result["status"] != "failed":
        await invalidate_view_cache()
    else:
        logger.error(f"Refresh failed at stage {result['failed_stage']}: {result['error']}")

    return result


if __name__ == "__main__":
    settings = get_settings()
    scheduled_refresh.serve(
        name=settings.pipeline.name,
        cron=settings.pipeline.schedule_cron,
    )
