"""
Test Suite Configuration
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import polars as pl
import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from telecom_analytics.config import PipelineSettings
from telecom_analytics.database.connection import create_session_factory
from telecom_analytics.database.models import (
    Base,
    Customer,
    FiberConnection,
    Payment,
    Plan,
    SimConnection,
)
from telecom_analytics.errors import SourceUnavailableError
from telecom_analytics.sources.accessor import SourceAccessor
from telecom_analytics.sources.schemas import (
    SourceSnapshot,
    customers_frame,
    fibers_frame,
    payments_frame,
    plans_frame,
    sims_frame,
)

# Fixed "now" for every risk and recency assertion
NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


# =============================================================================
# DATASET
#
# 1 Asha   Active, no connections             -> deactivated, Low risk
# 2 Ravi   Active, one Active SIM             -> untouched, High (>180 days)
# 3 Meera  Inactive, Expired SIM, Active fiber -> stays Inactive, Medium
# 4 Kabir  Active, Suspended SIM              -> deactivated, High (no history)
# =============================================================================

def customer_rows() -> List[Dict[str, Any]]:
    return [
        {
            "customer_id": 1, "full_name": "  Asha Rao ", "gender": "F", "dob": date(1990, 4, 2),
            "city": " mUMBAI", "phone_number": "9000000001", "email": "asha@example.com",
            "registration_date": datetime(2024, 1, 10, 9, 30), "customer_type": "Prepaid",
            "status": "Active",
        },
        {
            "customer_id": 2, "full_name": "Ravi Kumar", "gender": "M", "dob": date(1985, 8, 19),
            "city": "Delhi", "phone_number": "9000000002", "email": "ravi@example.com",
            "registration_date": datetime(2024, 2, 1, 11, 0), "customer_type": "Postpaid",
            "status": "Active",
        },
        {
            "customer_id": 3, "full_name": "Meera Iyer", "gender": "F", "dob": date(1995, 12, 5),
            "city": "Chennai", "phone_number": "9000000003", "email": None,
            "registration_date": datetime(2024, 3, 15, 16, 45), "customer_type": "Postpaid",
            "status": "Inactive",
        },
        {
            "customer_id": 4, "full_name": "Kabir Shah", "gender": "M", "dob": None,
            "city": "Delhi", "phone_number": "9000000004", "email": "kabir@example.com",
            "registration_date": datetime(2024, 4, 20, 8, 15), "customer_type": "Prepaid",
            "status": "Active",
        },
    ]


def plan_rows() -> List[Dict[str, Any]]:
    return [
        {
            "plan_id": 10, "plan_name": "Jio 299", "plan_type": "Mobile", "price": Decimal("299.00"),
            "validity_days": 28, "data_per_day_gb": 2.0, "call_limit_minutes": None, "speed_mbps": None,
        },
        {
            "plan_id": 20, "plan_name": "Fiber 100", "plan_type": "Fiber", "price": Decimal("999.00"),
            "validity_days": 30, "data_per_day_gb": None, "call_limit_minutes": None, "speed_mbps": 100,
        },
        {
            "plan_id": 30, "plan_name": "AirFiber Lite", "plan_type": "Broadband", "price": Decimal("599.00"),
            "validity_days": 30, "data_per_day_gb": None, "call_limit_minutes": None, "speed_mbps": 30,
        },
    ]


def sim_rows() -> List[Dict[str, Any]]:
    return [
        {
            "sim_id": 100, "sim_number": "8991000000000000002", "customer_id": 2, "plan_id": 10,
            "activation_date": date(2024, 2, 2), "validity_days": 28, "data_limit_gb": 56.0,
            "call_limit_minutes": None, "status": "Active",
        },
        {
            "sim_id": 101, "sim_number": "8991000000000000003", "customer_id": 3, "plan_id": 10,
            "activation_date": date(2024, 3, 20), "validity_days": 28, "data_limit_gb": 56.0,
            "call_limit_minutes": None, "status": "Expired",
        },
        {
            "sim_id": 102, "sim_number": "8991000000000000004", "customer_id": 4, "plan_id": 10,
            "activation_date": date(2024, 4, 21), "validity_days": 28, "data_limit_gb": 56.0,
            "call_limit_minutes": None, "status": "Suspended",
        },
    ]


def fiber_rows() -> List[Dict[str, Any]]:
    return [
        {
            "fiber_id": 200, "customer_id": 3, "plan_id": 20, "connection_type": "FTTH",
            "installation_date": date(2024, 3, 25), "speed_mbps": 100, "data_limit_gb": 3300.0,
            "router_model": "JioFiber Gen2", "status": "Active",
        },
    ]


def payment_rows() -> List[Dict[str, Any]]:
    return [
        {
            "payment_id": 1000, "customer_id": 1, "plan_id": 10, "payment_date": date(2025, 6, 1),
            "amount_paid": Decimal("100.00"), "payment_method": "UPI", "payment_status": "Success",
        },
        {
            "payment_id": 1001, "customer_id": 1, "plan_id": 10, "payment_date": date(2025, 6, 2),
            "amount_paid": Decimal("50.00"), "payment_method": "Card", "payment_status": "Failed",
        },
        {
            "payment_id": 1002, "customer_id": 2, "plan_id": 10, "payment_date": date(2024, 12, 1),
            "amount_paid": Decimal("200.00"), "payment_method": "UPI", "payment_status": "Success",
        },
        {
            "payment_id": 1003, "customer_id": 3, "plan_id": 20, "payment_date": date(2025, 3, 15),
            "amount_paid": Decimal("300.00"), "payment_method": "NetBanking", "payment_status": "Success",
        },
        {
            "payment_id": 1004, "customer_id": 4, "plan_id": 10, "payment_date": date(2025, 5, 5),
            "amount_paid": Decimal("75.00"), "payment_method": "Card", "payment_status": "Failed",
        },
    ]


# =============================================================================
# FRAMES
# =============================================================================

@pytest.fixture
def sample_snapshot() -> SourceSnapshot:
    """The dataset above as an in-memory snapshot"""
    return SourceSnapshot(
        customers=customers_frame(customer_rows()),
        plans=plans_frame(plan_rows()),
        sim_connections=sims_frame(sim_rows()),
        fiber_connections=fibers_frame(fiber_rows()),
        payments=payments_frame(payment_rows()),
    )


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    """Pipeline settings tuned for fast tests"""
    return PipelineSettings(
        name="test_refresh",
        source_timeout_seconds=5,
        write_timeout_seconds=5,
        lock_wait_seconds=0,
        lock_poll_interval_seconds=0.05,
        strict_validation=False,
        normalize_text=True,
    )


@pytest.fixture
async def test_engine():
    """In-memory database shared by every session of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


async def seed(session_factory, **tables: List[Dict[str, Any]]) -> None:
    """Insert rows into source tables, keyed by table name"""
    models = {
        "customers": Customer,
        "plans": Plan,
        "sim_connections": SimConnection,
        "fiber_connections": FiberConnection,
        "payments": Payment,
    }
    async with session_factory() as session:
        async with session.begin():
            for name, rows in tables.items():
                if rows:
                    await session.execute(insert(models[name]), rows)


@pytest.fixture
async def seeded_factory(session_factory):
    """Session factory over a database holding the sample dataset"""
    await seed(
        session_factory,
        customers=customer_rows(),
        plans=plan_rows(),
        sim_connections=sim_rows(),
        fiber_connections=fiber_rows(),
        payments=payment_rows(),
    )
    return session_factory


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    """Clock pinned to NOW"""
    return fixed_clock


# =============================================================================
# IN-MEMORY SOURCE
# =============================================================================

class InMemorySource(SourceAccessor):
    """Source accessor over a snapshot, recording status writes"""

    def __init__(self, snapshot: SourceSnapshot, fail_on: Optional[str] = None):
        self.snapshot = snapshot
        self.fail_on = fail_on
        self.writes: List[Tuple[int, str]] = []

    def _check(self, operation: str) -> None:
        if operation == self.fail_on:
            raise SourceUnavailableError(operation, "connection refused")

    async def fetch_customers(self) -> pl.DataFrame:
        self._check("fetch_customers")
        return self.snapshot.customers

    async def fetch_plans(self) -> pl.DataFrame:
        self._check("fetch_plans")
        return self.snapshot.plans

    async def fetch_sim_connections(self) -> pl.DataFrame:
        self._check("fetch_sim_connections")
        return self.snapshot.sim_connections

    async def fetch_fiber_connections(self) -> pl.DataFrame:
        self._check("fetch_fiber_connections")
        return self.snapshot.fiber_connections

    async def fetch_payments(self, since: Optional[date] = None) -> pl.DataFrame:
        self._check("fetch_payments")
        payments = self.snapshot.payments
        if since is not None:
            payments = payments.filter(pl.col("payment_date") >= since)
        return payments

    async def update_customer_status(self, customer_id: int, status: str) -> None:
        self._check("update_customer_status")
        self.writes.append((customer_id, status))
        self.snapshot = self.snapshot.with_frames(
            customers=self.snapshot.customers.with_columns(
                pl.when(pl.col("customer_id") == customer_id)
                .then(pl.lit(status))
                .otherwise(pl.col("status"))
                .alias("status")
            )
        )


@pytest.fixture
def memory_source(sample_snapshot) -> InMemorySource:
    return InMemorySource(sample_snapshot)
