"""
Materialized Table Replacement

Derived tables are versionless caches rebuilt wholesale each run. The new
contents are staged in memory first and published with a delete + insert
inside one transaction, so readers see either the old rows or the new rows.
Any exit from the transaction other than a clean commit (error, timeout,
cancellation) rolls it back and leaves the previous contents intact.
"""

import asyncio
from typing import Any, Dict, Optional, Sequence, Type

import structlog
from sqlalchemy import delete, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.database.models import Base
from telecom_analytics.errors import ReplaceFailure

logger = structlog.get_logger(__name__)


async def _publish(
    session_factory: async_sessionmaker[AsyncSession],
    model: Type[Base],
    rows: Sequence[Dict[str, Any]],
) -> None:
    async with session_factory() as session:
        async with session.begin():
            await session.execute(delete(model))
            if rows:
                await session.execute(insert(model), list(rows))


async def replace_table(
    session_factory: async_sessionmaker[AsyncSession],
    model: Type[Base],
    rows: Sequence[Dict[str, Any]],
    timeout_seconds: Optional[float] = None,
) -> int:
    """
    Atomically replace every row of a derived table.

    Args:
        session_factory: Session factory bound to the target database
        model: ORM model of the derived table
        rows: Complete new contents, one dict per row
        timeout_seconds: Abort (and roll back) after this long

    Returns:
        Number of rows published

    Raises:
        ReplaceFailure: The write was rejected or timed out
    """
    table = model.__tablename__

    try:
        await asyncio.wait_for(_publish(session_factory, model, rows), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.error("Table replace timed out, rolled back", table=table, timeout_seconds=timeout_seconds)
        raise ReplaceFailure(table, f"timed out after {timeout_seconds}s") from e
    except SQLAlchemyError as e:
        logger.error("Table replace rejected, rolled back", table=table, error=str(e))
        raise ReplaceFailure(table, str(e)) from e

    logger.info("Table replaced", table=table, rows=len(rows))
    return len(rows)
