"""
Status Reconciler

A customer's status is a cached projection of its connections: Active iff
at least one owned SIM or fiber connection is Active. Activation is an
external business event, so the reconciler only ever writes Inactive.
"""

from typing import Set

import polars as pl
import structlog

from telecom_analytics.database.models import ConnectionStatus, CustomerStatus
from telecom_analytics.sources.accessor import SourceAccessor

logger = structlog.get_logger(__name__)


def active_customer_ids(sim_connections: pl.DataFrame, fiber_connections: pl.DataFrame) -> Set[int]:
    """Customers owning at least one Active connection"""
    active = set()
    for connections in (sim_connections, fiber_connections):
        owners = (
            connections
            .filter(pl.col("status") == ConnectionStatus.ACTIVE.value)
            .get_column("customer_id")
            .drop_nulls()
        )
        active.update(owners.to_list())
    return active


def plan_deactivations(
    customers: pl.DataFrame,
    sim_connections: pl.DataFrame,
    fiber_connections: pl.DataFrame,
) -> Set[int]:
    """
    Customers that must be written as Inactive.

    Customers already Inactive are skipped, so a second pass over unchanged
    data plans no writes.
    """
    active = active_customer_ids(sim_connections, fiber_connections)
    pending = customers.filter(pl.col("status").ne_missing(CustomerStatus.INACTIVE.value))
    if active:
        pending = pending.filter(~pl.col("customer_id").is_in(sorted(active)))
    return set(pending.get_column("customer_id").drop_nulls().to_list())


def apply_status(customers: pl.DataFrame, customer_ids: Set[int], status: str) -> pl.DataFrame:
    """Mirror written statuses into the in-memory customers frame"""
    if not customer_ids:
        return customers
    return customers.with_columns(
        pl.when(pl.col("customer_id").is_in(sorted(customer_ids)))
        .then(pl.lit(status))
        .otherwise(pl.col("status"))
        .alias("status")
    )


class StatusReconciler:
    """
    Writes derived Inactive statuses back to the source.

    Example:
        reconciler = StatusReconciler(accessor)
        updated = await reconciler.reconcile(customers, sims, fibers)
    """

    def __init__(self, source: SourceAccessor):
        self.source = source

    async def reconcile(
        self,
        customers: pl.DataFrame,
        sim_connections: pl.DataFrame,
        fiber_connections: pl.DataFrame,
    ) -> Set[int]:
        """
        Deactivate customers without an Active connection.

        Returns:
            Ids of customers whose status was written
        """
        to_deactivate = plan_deactivations(customers, sim_connections, fiber_connections)

        if to_deactivate:
            await self.source.update_customer_statuses(
                sorted(to_deactivate), CustomerStatus.INACTIVE.value
            )

        logger.info("Customer statuses reconciled", deactivated=len(to_deactivate))
        return to_deactivate
