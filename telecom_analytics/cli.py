"""
Command Line Trigger

Runs one refresh and prints the result as JSON.

Usage:
    telecom-refresh [--strict] [--create-tables] [--log-level DEBUG]
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

import structlog

from telecom_analytics.config import get_settings
from telecom_analytics.config.logging import configure_logging
from telecom_analytics.database.connection import (
    close_database,
    create_derived_tables,
    get_session_factory,
    init_database,
)
from telecom_analytics.pipeline.orchestrator import RefreshOrchestrator, RunResult
from telecom_analytics.sources.accessor import SqlSourceAccessor

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="telecom-refresh",
        description="Run one full refresh of the telecom derived metrics",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail the run when validation reports any finding",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the derived tables before running",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


async def run_once(strict: bool = False, create_tables: bool = False) -> RunResult:
    """Initialise the database, run one refresh and shut down"""
    settings = get_settings()
    engine = await init_database()

    try:
        if create_tables:
            await create_derived_tables(engine)
            logger.info("Derived tables ensured")

        session_factory = get_session_factory()
        orchestrator = RefreshOrchestrator(
            SqlSourceAccessor(session_factory, timeout_seconds=settings.pipeline.source_timeout_seconds),
            session_factory,
            settings.pipeline,
            strict_validation=strict or None,
        )
        return await orchestrator.run_refresh()
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(log_level=args.log_level)

    result = asyncio.run(run_once(strict=args.strict, create_tables=args.create_tables))
    if not result.succeeded:
        logger.error("Refresh did not succeed", run_id=result.run_id, failed_stage=result.failed_stage)

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
