"""
Management KPIs

Insight queries over a source snapshot and the derived views:
- Customer and connection counts
- Revenue totals, monthly trend and top cities
- Customer segmentation and top customers
- Churn risk candidates
- Plan rankings and ARPU per plan type

All revenue figures count Success payments only.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import polars as pl
import structlog

from telecom_analytics.database.models import ConnectionStatus, CustomerStatus, PaymentStatus
from telecom_analytics.pipeline.aggregations import plan_performance
from telecom_analytics.sources.schemas import CENT, SourceSnapshot, coerce_money

logger = structlog.get_logger(__name__)

SUCCESS = pl.col("payment_status") == PaymentStatus.SUCCESS.value
PROBLEM_SIM_STATUSES = [ConnectionStatus.EXPIRED.value, ConnectionStatus.SUSPENDED.value]
TOP_CUSTOMER_COLUMNS = ["customer_id", "full_name", "city", "successful_payment_count", "total_revenue"]
TOP_PLAN_COLUMNS = ["plan_id", "plan_name", "plan_type", "unique_paying_customers", "total_revenue"]


def _months_back(day: date, months: int) -> date:
    """Same day `months` calendar months earlier, clamped to month end"""
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


# =============================================================================
# OVERALL
# =============================================================================

def total_active_customers(customers: pl.DataFrame) -> int:
    return customers.filter(pl.col("status") == CustomerStatus.ACTIVE.value).height


def customers_by_type_and_status(customers: pl.DataFrame) -> pl.DataFrame:
    return (
        customers
        .group_by(["customer_type", "status"])
        .agg(pl.len().cast(pl.Int64).alias("customer_count"))
        .sort(["customer_type", "status"], nulls_last=True)
    )


def active_connection_counts(sim_connections: pl.DataFrame, fiber_connections: pl.DataFrame) -> Dict[str, int]:
    active = pl.col("status") == ConnectionStatus.ACTIVE.value
    return {
        "active_sims": sim_connections.filter(active).height,
        "active_fibers": fiber_connections.filter(active).height,
    }


# =============================================================================
# REVENUE
# =============================================================================

def total_revenue(payments: pl.DataFrame) -> Decimal:
    amounts = payments.filter(SUCCESS).get_column("amount_paid").drop_nulls().to_list()
    return sum(amounts, Decimal("0.00")).quantize(CENT)


def monthly_revenue_trend(payments: pl.DataFrame, as_of: date, months: int = 12) -> pl.DataFrame:
    """Revenue per month for payments dated within the last `months` months"""
    since = _months_back(as_of, months)
    trend = (
        payments
        .filter(pl.col("payment_date").is_not_null() & (pl.col("payment_date") >= since))
        .with_columns(pl.col("payment_date").dt.strftime("%Y-%m").alias("year_month"))
        .group_by("year_month")
        .agg(pl.col("amount_paid").filter(SUCCESS).sum().alias("monthly_revenue"))
        .sort("year_month")
    )
    return coerce_money(trend, "monthly_revenue")


def top_cities_by_revenue(customers: pl.DataFrame, payments: pl.DataFrame, limit: int = 5) -> pl.DataFrame:
    cities = (
        payments
        .join(customers.select(["customer_id", "city"]), on="customer_id", how="inner")
        .group_by("city")
        .agg(pl.col("amount_paid").filter(SUCCESS).sum().alias("city_revenue"))
    )
    cities = coerce_money(cities, "city_revenue")
    return cities.sort(["city_revenue", "city"], descending=[True, False], nulls_last=True).head(limit)


# =============================================================================
# SEGMENTATION AND RISK
# =============================================================================

def customers_by_city_and_type(customers: pl.DataFrame) -> pl.DataFrame:
    return (
        customers
        .group_by(["city", "customer_type"])
        .agg(pl.len().cast(pl.Int64).alias("customer_count"))
        .sort(["city", "customer_type"], nulls_last=True)
    )


def top_customers_by_revenue(customer_value: pl.DataFrame, limit: int = 10) -> pl.DataFrame:
    return customer_value.sort(
        ["total_revenue", "customer_id"], descending=[True, False]
    ).head(limit)


def at_risk_customers(customer_value: pl.DataFrame, as_of: date, inactive_days: int = 90) -> pl.DataFrame:
    """Customers without a successful payment in `inactive_days` days, or ever"""
    cutoff = as_of - timedelta(days=inactive_days)
    return (
        customer_value
        .filter(pl.col("last_payment_date").is_null() | (pl.col("last_payment_date") < cutoff))
        .select([
            "customer_id", "full_name", "city", "customer_type",
            "customer_status", "last_payment_date",
        ])
        .sort(["last_payment_date", "customer_id"], nulls_last=False)
    )


def problem_sims(sim_connections: pl.DataFrame) -> pl.DataFrame:
    """SIM connections that are Expired or Suspended"""
    return sim_connections.filter(pl.col("status").is_in(PROBLEM_SIM_STATUSES))


# =============================================================================
# PLANS
# =============================================================================

def top_plans_by_revenue(performance: pl.DataFrame, limit: int = 5) -> pl.DataFrame:
    return performance.sort(
        ["total_revenue", "plan_id"], descending=[True, False]
    ).head(limit)


def arpu_by_plan_type(plans: pl.DataFrame, payments: pl.DataFrame) -> List[Dict[str, Any]]:
    """
    Average revenue per paying user for each plan type.

    ARPU is None for a plan type without any successful payment.
    """
    by_type = (
        plans
        .select(["plan_id", "plan_type"])
        .join(payments, on="plan_id", how="left")
        .group_by("plan_type")
        .agg([
            pl.col("amount_paid").filter(SUCCESS).sum().alias("revenue"),
            pl.col("customer_id").filter(SUCCESS).drop_nulls().n_unique().cast(pl.Int64)
            .alias("paying_customers"),
        ])
    )
    by_type = coerce_money(by_type, "revenue").sort("plan_type", nulls_last=True)

    rows = []
    for row in by_type.iter_rows(named=True):
        payers = row["paying_customers"]
        arpu = (row["revenue"] / payers).quantize(CENT) if payers else None
        rows.append({
            "plan_type": row["plan_type"],
            "revenue": row["revenue"],
            "paying_customers": payers,
            "arpu": arpu,
        })
    return rows


# =============================================================================
# SUMMARY
# =============================================================================

@dataclass
class KpiSummary:
    """Headline KPIs for management dashboards"""
    as_of: date
    total_active_customers: int
    active_sims: int
    active_fibers: int
    total_revenue: Decimal
    customers_by_type_and_status: List[Dict[str, Any]] = field(default_factory=list)
    monthly_revenue_trend: List[Dict[str, Any]] = field(default_factory=list)
    top_cities: List[Dict[str, Any]] = field(default_factory=list)
    customers_by_city_and_type: List[Dict[str, Any]] = field(default_factory=list)
    top_customers: List[Dict[str, Any]] = field(default_factory=list)
    top_plans: List[Dict[str, Any]] = field(default_factory=list)
    at_risk_customer_count: int = 0
    problem_sim_count: int = 0


def compute_kpi_summary(
    snapshot: SourceSnapshot,
    customer_value: pl.DataFrame,
    as_of: date,
    trend_months: int = 12,
    top_n: int = 5,
    at_risk_days: Optional[int] = None,
    plan_stats: Optional[pl.DataFrame] = None,
) -> KpiSummary:
    """Compute the headline KPI set from one snapshot"""
    connections = active_connection_counts(snapshot.sim_connections, snapshot.fiber_connections)
    at_risk = at_risk_customers(customer_value, as_of, at_risk_days or 90)
    if plan_stats is None:
        plan_stats = plan_performance(snapshot.plans, snapshot.payments)

    summary = KpiSummary(
        as_of=as_of,
        total_active_customers=total_active_customers(snapshot.customers),
        active_sims=connections["active_sims"],
        active_fibers=connections["active_fibers"],
        total_revenue=total_revenue(snapshot.payments),
        customers_by_type_and_status=customers_by_type_and_status(snapshot.customers).to_dicts(),
        monthly_revenue_trend=monthly_revenue_trend(snapshot.payments, as_of, trend_months).to_dicts(),
        top_cities=top_cities_by_revenue(snapshot.customers, snapshot.payments, top_n).to_dicts(),
        customers_by_city_and_type=customers_by_city_and_type(snapshot.customers).to_dicts(),
        top_customers=top_customers_by_revenue(customer_value, top_n).select(TOP_CUSTOMER_COLUMNS).to_dicts(),
        top_plans=top_plans_by_revenue(plan_stats, top_n).select(TOP_PLAN_COLUMNS).to_dicts(),
        at_risk_customer_count=at_risk.height,
        problem_sim_count=problem_sims(snapshot.sim_connections).height,
    )

    logger.info(
        "KPI summary computed",
        active_customers=summary.total_active_customers,
        total_revenue=str(summary.total_revenue),
        at_risk=summary.at_risk_customer_count,
    )
    return summary
