"""
Source Accessor

Read interface over the operational tables plus the single write the
pipeline performs (customer status). Every call is bounded by a timeout;
infrastructure failures surface as SourceUnavailableError.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Awaitable, Collection, Dict, Optional, Type, TypeVar

import polars as pl
import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.database.models import (
    Base,
    Customer,
    FiberConnection,
    Payment,
    Plan,
    SimConnection,
)
from telecom_analytics.errors import SourceUnavailableError
from telecom_analytics.sources.schemas import (
    CUSTOMER_SCHEMA,
    FIBER_SCHEMA,
    PAYMENT_SCHEMA,
    PLAN_SCHEMA,
    SIM_SCHEMA,
    SourceSnapshot,
    build_frame,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SourceAccessor(ABC):
    """
    Typed access to Customers, Plans, SimConnections, FiberConnections and Payments.

    Implementations return polars DataFrames matching the schemas in
    telecom_analytics.sources.schemas. Row order carries no meaning.
    """

    @abstractmethod
    async def fetch_customers(self) -> pl.DataFrame:
        ...

    @abstractmethod
    async def fetch_plans(self) -> pl.DataFrame:
        ...

    @abstractmethod
    async def fetch_sim_connections(self) -> pl.DataFrame:
        ...

    @abstractmethod
    async def fetch_fiber_connections(self) -> pl.DataFrame:
        ...

    @abstractmethod
    async def fetch_payments(self, since: Optional[date] = None) -> pl.DataFrame:
        ...

    @abstractmethod
    async def update_customer_status(self, customer_id: int, status: str) -> None:
        ...

    async def update_customer_statuses(self, customer_ids: Collection[int], status: str) -> int:
        """Set the status of several customers. Returns the number of ids written."""
        for customer_id in customer_ids:
            await self.update_customer_status(customer_id, status)
        return len(customer_ids)

    async def fetch_snapshot(self) -> SourceSnapshot:
        """Read all five source collections."""
        return SourceSnapshot(
            customers=await self.fetch_customers(),
            plans=await self.fetch_plans(),
            sim_connections=await self.fetch_sim_connections(),
            fiber_connections=await self.fetch_fiber_connections(),
            payments=await self.fetch_payments(),
        )


class SqlSourceAccessor(SourceAccessor):
    """
    Source accessor over the relational store.

    Example:
        accessor = SqlSourceAccessor(get_session_factory(), timeout_seconds=30)
        snapshot = await accessor.fetch_snapshot()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def _guarded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("Source call timed out", operation=operation, timeout_seconds=self.timeout_seconds)
            raise SourceUnavailableError(operation, f"timed out after {self.timeout_seconds}s") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error("Source call failed", operation=operation, error=str(e))
            raise SourceUnavailableError(operation, str(e)) from e

    async def _read_table(self, model: Type[Base], schema: Dict[str, pl.DataType], where=None) -> pl.DataFrame:
        columns = [getattr(model, name) for name in schema]
        query = select(*columns)
        if where is not None:
            query = query.where(where)

        async with self._session_factory() as session:
            result = await session.execute(query)
            rows = [dict(row) for row in result.mappings().all()]

        logger.debug("Source table read", table=model.__tablename__, rows=len(rows))
        return build_frame(rows, schema)

    async def fetch_customers(self) -> pl.DataFrame:
        return await self._guarded("fetch_customers", self._read_table(Customer, CUSTOMER_SCHEMA))

    async def fetch_plans(self) -> pl.DataFrame:
        return await self._guarded("fetch_plans", self._read_table(Plan, PLAN_SCHEMA))

    async def fetch_sim_connections(self) -> pl.DataFrame:
        return await self._guarded("fetch_sim_connections", self._read_table(SimConnection, SIM_SCHEMA))

    async def fetch_fiber_connections(self) -> pl.DataFrame:
        return await self._guarded("fetch_fiber_connections", self._read_table(FiberConnection, FIBER_SCHEMA))

    async def fetch_payments(self, since: Optional[date] = None) -> pl.DataFrame:
        where = Payment.payment_date >= since if since is not None else None
        return await self._guarded("fetch_payments", self._read_table(Payment, PAYMENT_SCHEMA, where))

    async def _write_statuses(self, customer_ids: Collection[int], status: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Customer)
                    .where(Customer.customer_id.in_(list(customer_ids)))
                    .values(status=status)
                )

    async def update_customer_status(self, customer_id: int, status: str) -> None:
        await self._guarded("update_customer_status", self._write_statuses([customer_id], status))

    async def update_customer_statuses(self, customer_ids: Collection[int], status: str) -> int:
        if not customer_ids:
            return 0
        await self._guarded("update_customer_statuses", self._write_statuses(customer_ids, status))
        return len(customer_ids)
