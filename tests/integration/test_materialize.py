"""
Integration Tests - Atomic Table Replace
"""
import asyncio
from decimal import Decimal
from typing import List, Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from telecom_analytics.database.materialize import replace_table
from telecom_analytics.database.models import CustomerRiskFlag, MonthlyRevenueFact, RiskLevel
from telecom_analytics.errors import ReplaceFailure

pytestmark = pytest.mark.integration


def fact(year_month: str, revenue: str, count: int, computed_at) -> dict:
    return {
        "year_month": year_month,
        "total_revenue": Decimal(revenue),
        "successful_transactions": count,
        "computed_at": computed_at,
    }


async def fact_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(
                MonthlyRevenueFact.year_month,
                MonthlyRevenueFact.total_revenue,
                MonthlyRevenueFact.successful_transactions,
            ).order_by(MonthlyRevenueFact.year_month)
        )
        return [tuple(row) for row in result.all()]


def stall_statements_on(
    monkeypatch, table_name: str, kind: str = "delete", executed: Optional[List[str]] = None
) -> asyncio.Event:
    """
    Make one kind of statement ("delete" or "insert") on one table hang
    forever. The event fires when one starts. Statements that do run on the
    table are appended to `executed`.
    """
    stalled = asyncio.Event()
    original = AsyncSession.execute

    async def execute(self, statement, *args, **kwargs):
        table = getattr(statement, "table", None)
        if getattr(table, "name", None) == table_name:
            if getattr(statement, f"is_{kind}", False):
                stalled.set()
                await asyncio.sleep(3600)
            if executed is not None:
                executed.append("delete" if getattr(statement, "is_delete", False) else "insert")
        return await original(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute)
    return stalled


async def test_replace_publishes_new_rows(session_factory, now):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])

    published = await replace_table(
        session_factory,
        MonthlyRevenueFact,
        [fact("2025-02", "20.00", 2, now), fact("2025-03", "0.00", 0, now)],
    )

    assert published == 2
    assert await fact_rows(session_factory) == [
        ("2025-02", Decimal("20.00"), 2),
        ("2025-03", Decimal("0.00"), 0),
    ]


async def test_replace_with_no_rows_clears_table(session_factory, now):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])

    assert await replace_table(session_factory, MonthlyRevenueFact, []) == 0
    assert await fact_rows(session_factory) == []


async def test_rejected_write_keeps_previous_rows(session_factory, now):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])

    # Duplicate primary key fails after the delete already ran
    with pytest.raises(ReplaceFailure) as exc_info:
        await replace_table(
            session_factory,
            MonthlyRevenueFact,
            [fact("2025-02", "20.00", 2, now), fact("2025-02", "30.00", 3, now)],
        )

    assert exc_info.value.artifact == "fact_monthly_revenue"
    assert await fact_rows(session_factory) == [("2025-01", Decimal("10.00"), 1)]


async def test_timed_out_write_keeps_previous_rows(session_factory, now, monkeypatch):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])
    stall_statements_on(monkeypatch, "fact_monthly_revenue")

    with pytest.raises(ReplaceFailure, match="timed out"):
        await replace_table(
            session_factory, MonthlyRevenueFact, [fact("2025-02", "20.00", 2, now)], timeout_seconds=0.1
        )

    monkeypatch.undo()
    assert await fact_rows(session_factory) == [("2025-01", Decimal("10.00"), 1)]


async def test_cancelled_write_keeps_previous_rows(session_factory, now, monkeypatch):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])
    stalled = stall_statements_on(monkeypatch, "fact_monthly_revenue")

    task = asyncio.create_task(
        replace_table(session_factory, MonthlyRevenueFact, [fact("2025-02", "20.00", 2, now)])
    )
    await asyncio.wait_for(stalled.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    monkeypatch.undo()
    assert await fact_rows(session_factory) == [("2025-01", Decimal("10.00"), 1)]


async def test_cancel_between_delete_and_insert_keeps_previous_rows(session_factory, now, monkeypatch):
    await replace_table(session_factory, MonthlyRevenueFact, [fact("2025-01", "10.00", 1, now)])
    executed: List[str] = []
    stalled = stall_statements_on(monkeypatch, "fact_monthly_revenue", kind="insert", executed=executed)

    task = asyncio.create_task(
        replace_table(session_factory, MonthlyRevenueFact, [fact("2025-02", "20.00", 2, now)])
    )
    await asyncio.wait_for(stalled.wait(), timeout=5)
    assert executed == ["delete"]
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    monkeypatch.undo()
    assert await fact_rows(session_factory) == [("2025-01", Decimal("10.00"), 1)]


async def test_risk_levels_round_trip(session_factory, now):
    await replace_table(
        session_factory,
        CustomerRiskFlag,
        [
            {"customer_id": 1, "risk_level": RiskLevel.LOW, "reason": "Recent payer", "updated_at": now},
            {"customer_id": 2, "risk_level": RiskLevel.HIGH, "reason": "No payment history", "updated_at": now},
        ],
    )

    async with session_factory() as session:
        result = await session.execute(
            select(CustomerRiskFlag.customer_id, CustomerRiskFlag.risk_level).order_by(CustomerRiskFlag.customer_id)
        )
        rows = result.all()

    assert rows == [(1, RiskLevel.LOW), (2, RiskLevel.HIGH)]
