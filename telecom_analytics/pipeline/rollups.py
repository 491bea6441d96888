"""
Materialized Rollups

Monthly revenue facts and customer risk flags. Both are computed from the
source snapshot (never from another materialized table) and published with
an atomic full replace.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import polars as pl
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.database.materialize import replace_table
from telecom_analytics.database.models import CustomerRiskFlag, MonthlyRevenueFact, RiskLevel
from telecom_analytics.pipeline.aggregations import SUCCESS
from telecom_analytics.sources.schemas import coerce_money

logger = structlog.get_logger(__name__)

REASON_NO_HISTORY = "No payment history"
RECENT_PAYER = "Recent payer"


# =============================================================================
# MONTHLY REVENUE
# =============================================================================

def compute_monthly_revenue(payments: pl.DataFrame) -> pl.DataFrame:
    """
    One row per calendar month with at least one payment of any status.

    Revenue and transaction count cover Success payments only, so a month
    of failed payments is kept with zero revenue. Payments without a date
    belong to no month and are left out.
    """
    monthly = (
        payments
        .filter(pl.col("payment_date").is_not_null())
        .with_columns(pl.col("payment_date").dt.strftime("%Y-%m").alias("year_month"))
        .group_by("year_month")
        .agg([
            pl.col("amount_paid").filter(SUCCESS).sum().alias("total_revenue"),
            SUCCESS.sum().cast(pl.Int64).alias("successful_transactions"),
        ])
        .with_columns(pl.col("successful_transactions").fill_null(0))
        .sort("year_month")
    )
    return coerce_money(monthly, "total_revenue")


async def refresh_monthly_revenue(
    session_factory: async_sessionmaker[AsyncSession],
    payments: pl.DataFrame,
    computed_at: datetime,
    timeout_seconds: Optional[float] = None,
) -> int:
    """Replace fact_monthly_revenue with the rollup of `payments`"""
    monthly = compute_monthly_revenue(payments)
    rows = [
        {**row, "computed_at": computed_at}
        for row in monthly.iter_rows(named=True)
    ]
    return await replace_table(session_factory, MonthlyRevenueFact, rows, timeout_seconds)


# =============================================================================
# RISK CLASSIFICATION
# =============================================================================

def classify_risk(
    last_payment_date: Optional[date],
    as_of: date,
    medium_after_days: int = 90,
    high_after_days: int = 180,
) -> Tuple[RiskLevel, str]:
    """
    Classify churn risk from the last successful payment date.

    First match wins: no payment ever, older than the High threshold,
    older than the Medium threshold, otherwise a recent payer.
    """
    if last_payment_date is None:
        return RiskLevel.HIGH, REASON_NO_HISTORY
    if last_payment_date < as_of - timedelta(days=high_after_days):
        return RiskLevel.HIGH, f"No payments in >{high_after_days} days"
    if last_payment_date < as_of - timedelta(days=medium_after_days):
        return RiskLevel.MEDIUM, f"No payments in >{medium_after_days} days"
    return RiskLevel.LOW, RECENT_PAYER


def compute_risk_flags(
    customer_value: pl.DataFrame,
    as_of: datetime,
    medium_after_days: int = 90,
    high_after_days: int = 180,
) -> List[Dict[str, Any]]:
    """One risk flag row per customer in the customer value view"""
    today = as_of.date()
    flags = []

    for row in customer_value.select(["customer_id", "last_payment_date"]).iter_rows(named=True):
        if row["customer_id"] is None:
            continue
        level, reason = classify_risk(
            row["last_payment_date"], today, medium_after_days, high_after_days
        )
        flags.append({
            "customer_id": row["customer_id"],
            "risk_level": level,
            "reason": reason,
            "updated_at": as_of,
        })

    return flags


async def refresh_customer_risk(
    session_factory: async_sessionmaker[AsyncSession],
    customer_value: pl.DataFrame,
    as_of: datetime,
    medium_after_days: int = 90,
    high_after_days: int = 180,
    timeout_seconds: Optional[float] = None,
) -> int:
    """Replace customer_risk_flags with a fresh classification"""
    flags = compute_risk_flags(customer_value, as_of, medium_after_days, high_after_days)

    summary = {level.value: 0 for level in RiskLevel}
    for flag in flags:
        summary[flag["risk_level"].value] += 1
    logger.info("Customers classified", **summary)

    return await replace_table(session_factory, CustomerRiskFlag, flags, timeout_seconds)
