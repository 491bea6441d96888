"""
Aggregation Engine

Pure functions computing the derived views from a source snapshot. Each
view depends only on the snapshot, never on another view, so they can be
computed in any order.

Views:
- customer_overview: customers with distinct SIM / fiber connection counts
- mobile_subscriptions: SIM connections with customer and plan details
- fiber_subscriptions: fiber connections with customer and plan details
- customer_value: successful payment totals per customer
- plan_performance: paying customers, transactions and revenue per plan
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

import polars as pl
import structlog

from telecom_analytics.database.models import PaymentStatus
from telecom_analytics.sources.schemas import SourceSnapshot, coerce_money

logger = structlog.get_logger(__name__)

SUCCESS = pl.col("payment_status") == PaymentStatus.SUCCESS.value


def _distinct_counts(connections: pl.DataFrame, id_column: str, alias: str) -> pl.DataFrame:
    return (
        connections
        .filter(pl.col("customer_id").is_not_null())
        .group_by("customer_id")
        .agg(pl.col(id_column).drop_nulls().n_unique().cast(pl.Int64).alias(alias))
    )


def customer_overview(
    customers: pl.DataFrame,
    sim_connections: pl.DataFrame,
    fiber_connections: pl.DataFrame,
) -> pl.DataFrame:
    """Every customer with its connection counts (0 when it owns none)"""
    sims = _distinct_counts(sim_connections, "sim_id", "total_sim_connections")
    fibers = _distinct_counts(fiber_connections, "fiber_id", "total_fiber_connections")

    return (
        customers
        .select([
            "customer_id", "full_name", "gender", "dob", "city",
            "registration_date", "customer_type",
            pl.col("status").alias("customer_status"),
        ])
        .join(sims, on="customer_id", how="left")
        .join(fibers, on="customer_id", how="left")
        .with_columns([
            pl.col("total_sim_connections").fill_null(0).cast(pl.Int64),
            pl.col("total_fiber_connections").fill_null(0).cast(pl.Int64),
        ])
    )


def mobile_subscriptions(
    sim_connections: pl.DataFrame,
    customers: pl.DataFrame,
    plans: pl.DataFrame,
) -> pl.DataFrame:
    """SIM connections joined with their customer and plan"""
    return (
        sim_connections
        .join(customers.select(["customer_id", "full_name", "city", "gender"]), on="customer_id", how="inner")
        .join(plans.select(["plan_id", "plan_name", "plan_type", "price"]), on="plan_id", how="inner")
        .select([
            "sim_id", "sim_number", "customer_id", "full_name", "city", "gender",
            "plan_id", "plan_name", "plan_type", "price",
            "activation_date", "validity_days", "data_limit_gb", "call_limit_minutes",
            pl.col("status").alias("sim_status"),
        ])
    )


def fiber_subscriptions(
    fiber_connections: pl.DataFrame,
    customers: pl.DataFrame,
    plans: pl.DataFrame,
) -> pl.DataFrame:
    """Fiber connections joined with their customer and plan"""
    return (
        fiber_connections
        .join(customers.select(["customer_id", "full_name", "city"]), on="customer_id", how="inner")
        .join(plans.select(["plan_id", "plan_name", "price"]), on="plan_id", how="inner")
        .select([
            "fiber_id", "customer_id", "full_name", "city", "connection_type",
            "plan_id", "plan_name", "price",
            "installation_date", "speed_mbps", "data_limit_gb", "router_model",
            pl.col("status").alias("fiber_status"),
        ])
    )


def customer_value(customers: pl.DataFrame, payments: pl.DataFrame) -> pl.DataFrame:
    """
    Lifetime value per customer.

    Only Success payments count toward the count, revenue and first/last
    payment dates. Customers without payments keep a row with zero
    revenue and null dates.
    """
    per_customer = (
        payments
        .filter(pl.col("customer_id").is_not_null())
        .group_by("customer_id")
        .agg([
            SUCCESS.sum().cast(pl.Int64).alias("successful_payment_count"),
            pl.col("amount_paid").filter(SUCCESS).sum().alias("total_revenue"),
            pl.col("payment_date").filter(SUCCESS).min().alias("first_payment_date"),
            pl.col("payment_date").filter(SUCCESS).max().alias("last_payment_date"),
        ])
    )

    value = (
        customers
        .select([
            "customer_id", "full_name", "city", "customer_type",
            pl.col("status").alias("customer_status"),
        ])
        .join(per_customer, on="customer_id", how="left")
        .with_columns(pl.col("successful_payment_count").fill_null(0).cast(pl.Int64))
    )
    return coerce_money(value, "total_revenue")


def plan_performance(plans: pl.DataFrame, payments: pl.DataFrame) -> pl.DataFrame:
    """Paying customers, transactions and revenue for every plan"""
    per_plan = (
        payments
        .filter(pl.col("plan_id").is_not_null())
        .group_by("plan_id")
        .agg([
            pl.col("customer_id").filter(SUCCESS).drop_nulls().n_unique().cast(pl.Int64)
            .alias("unique_paying_customers"),
            SUCCESS.sum().cast(pl.Int64).alias("successful_transaction_count"),
            pl.col("amount_paid").filter(SUCCESS).sum().alias("total_revenue"),
        ])
    )

    performance = (
        plans
        .select(["plan_id", "plan_name", "plan_type", "price"])
        .join(per_plan, on="plan_id", how="left")
        .with_columns([
            pl.col("unique_paying_customers").fill_null(0).cast(pl.Int64),
            pl.col("successful_transaction_count").fill_null(0).cast(pl.Int64),
        ])
    )
    return coerce_money(performance, "total_revenue")


@dataclass
class DerivedViews:
    """The five on-demand views computed from one snapshot"""
    customer_overview: pl.DataFrame
    mobile_subscriptions: pl.DataFrame
    fiber_subscriptions: pl.DataFrame
    customer_value: pl.DataFrame
    plan_performance: pl.DataFrame
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def row_counts(self) -> Dict[str, int]:
        return {
            "customer_overview": self.customer_overview.height,
            "mobile_subscriptions": self.mobile_subscriptions.height,
            "fiber_subscriptions": self.fiber_subscriptions.height,
            "customer_value": self.customer_value.height,
            "plan_performance": self.plan_performance.height,
        }


def compute_views(snapshot: SourceSnapshot) -> DerivedViews:
    """Compute all views from a (normalized, reconciled) snapshot"""
    views = DerivedViews(
        customer_overview=customer_overview(
            snapshot.customers, snapshot.sim_connections, snapshot.fiber_connections
        ),
        mobile_subscriptions=mobile_subscriptions(
            snapshot.sim_connections, snapshot.customers, snapshot.plans
        ),
        fiber_subscriptions=fiber_subscriptions(
            snapshot.fiber_connections, snapshot.customers, snapshot.plans
        ),
        customer_value=customer_value(snapshot.customers, snapshot.payments),
        plan_performance=plan_performance(snapshot.plans, snapshot.payments),
    )
    logger.info("Views computed", **views.row_counts())
    return views
