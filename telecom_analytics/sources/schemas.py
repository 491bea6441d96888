"""
Source Frame Schemas

In-memory representation of the operational source tables as polars
DataFrames with fixed column types. Monetary columns use a fixed-scale
decimal type so that sums are exact.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

import polars as pl

MONEY = pl.Decimal(precision=18, scale=2)
CENT = Decimal("0.01")

CUSTOMER_SCHEMA: Dict[str, pl.DataType] = {
    "customer_id": pl.Int64,
    "full_name": pl.Utf8,
    "gender": pl.Utf8,
    "dob": pl.Date,
    "city": pl.Utf8,
    "phone_number": pl.Utf8,
    "email": pl.Utf8,
    "registration_date": pl.Datetime("us"),
    "customer_type": pl.Utf8,
    "status": pl.Utf8,
}

PLAN_SCHEMA: Dict[str, pl.DataType] = {
    "plan_id": pl.Int64,
    "plan_name": pl.Utf8,
    "plan_type": pl.Utf8,
    "price": MONEY,
    "validity_days": pl.Int64,
    "data_per_day_gb": pl.Float64,
    "call_limit_minutes": pl.Int64,
    "speed_mbps": pl.Int64,
}

SIM_SCHEMA: Dict[str, pl.DataType] = {
    "sim_id": pl.Int64,
    "sim_number": pl.Utf8,
    "customer_id": pl.Int64,
    "plan_id": pl.Int64,
    "activation_date": pl.Date,
    "validity_days": pl.Int64,
    "data_limit_gb": pl.Float64,
    "call_limit_minutes": pl.Int64,
    "status": pl.Utf8,
}

FIBER_SCHEMA: Dict[str, pl.DataType] = {
    "fiber_id": pl.Int64,
    "customer_id": pl.Int64,
    "plan_id": pl.Int64,
    "connection_type": pl.Utf8,
    "installation_date": pl.Date,
    "speed_mbps": pl.Int64,
    "data_limit_gb": pl.Float64,
    "router_model": pl.Utf8,
    "status": pl.Utf8,
}

PAYMENT_SCHEMA: Dict[str, pl.DataType] = {
    "payment_id": pl.Int64,
    "customer_id": pl.Int64,
    "plan_id": pl.Int64,
    "payment_date": pl.Date,
    "amount_paid": MONEY,
    "payment_method": pl.Utf8,
    "payment_status": pl.Utf8,
}


def build_frame(rows: Iterable[Mapping[str, Any]], schema: Dict[str, pl.DataType]) -> pl.DataFrame:
    """
    Build a typed DataFrame from row mappings.

    Columns missing from a row are null. Keys not in the schema are ignored.
    """
    rows = list(rows)
    data = {name: [row.get(name) for row in rows] for name in schema}
    return pl.DataFrame(data, schema=schema)


def coerce_money(df: pl.DataFrame, column: str) -> pl.DataFrame:
    """Cast a summed money column back to MONEY with nulls as zero"""
    zero = Decimal("0.00")
    values = [zero if v is None else Decimal(v).quantize(CENT) for v in df[column].to_list()]
    return df.with_columns(pl.Series(column, values, dtype=MONEY))


def customers_frame(rows: Iterable[Mapping[str, Any]] = ()) -> pl.DataFrame:
    return build_frame(rows, CUSTOMER_SCHEMA)


def plans_frame(rows: Iterable[Mapping[str, Any]] = ()) -> pl.DataFrame:
    return build_frame(rows, PLAN_SCHEMA)


def sims_frame(rows: Iterable[Mapping[str, Any]] = ()) -> pl.DataFrame:
    return build_frame(rows, SIM_SCHEMA)


def fibers_frame(rows: Iterable[Mapping[str, Any]] = ()) -> pl.DataFrame:
    return build_frame(rows, FIBER_SCHEMA)


def payments_frame(rows: Iterable[Mapping[str, Any]] = ()) -> pl.DataFrame:
    return build_frame(rows, PAYMENT_SCHEMA)


@dataclass(frozen=True)
class SourceSnapshot:
    """Point-in-time copy of the five source collections"""
    customers: pl.DataFrame
    plans: pl.DataFrame
    sim_connections: pl.DataFrame
    fiber_connections: pl.DataFrame
    payments: pl.DataFrame
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def empty(cls) -> "SourceSnapshot":
        return cls(
            customers=customers_frame(),
            plans=plans_frame(),
            sim_connections=sims_frame(),
            fiber_connections=fibers_frame(),
            payments=payments_frame(),
        )

    def with_frames(self, **frames: pl.DataFrame) -> "SourceSnapshot":
        """Return a copy with some frames replaced"""
        return replace(self, **frames)

    def row_counts(self) -> Dict[str, int]:
        return {
            "customers": self.customers.height,
            "plans": self.plans.height,
            "sim_connections": self.sim_connections.height,
            "fiber_connections": self.fiber_connections.height,
            "payments": self.payments.height,
        }
