"""
Database Models - Operational Source and Derived Tables

Source Tables (external, read-only except customers.status):
- Customer: Subscriber identity, demographics and derived activity status
- Plan: Subscription plan reference data
- SimConnection: Mobile SIM connections
- FiberConnection: Home fiber connections
- Payment: Plan payments

Derived Tables (owned by the refresh pipeline, fully rebuilt each run):
- MonthlyRevenueFact: Month-keyed revenue summary
- CustomerRiskFlag: Per-customer churn risk classification
- PipelineRunLock: Lease row serializing pipeline runs

Source tables are imported as-is. Referential integrity is audited by the
data quality validator rather than enforced with foreign keys.
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class CustomerStatus(str, Enum):
    """Customer activity status"""
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ConnectionStatus(str, Enum):
    """SIM / fiber connection status"""
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"
    SUSPENDED = "Suspended"


class PaymentStatus(str, Enum):
    """Payment status. Source data may carry other values."""
    SUCCESS = "Success"
    FAILED = "Failed"
    PENDING = "Pending"


class RiskLevel(str, Enum):
    """Customer churn risk level"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# =============================================================================
# SOURCE TABLES
# =============================================================================

class Customer(Base):
    """
    Customer Table

    `status` is a cached projection of connection activity. The status
    reconciler is its only writer inside this system.
    """
    __tablename__ = "customers"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(150))
    gender: Mapped[Optional[str]] = mapped_column(String(20))
    dob: Mapped[Optional[date]] = mapped_column(Date)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    phone_number: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(150))
    registration_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    customer_type: Mapped[Optional[str]] = mapped_column(String(30))
    status: Mapped[Optional[str]] = mapped_column(String(20), default=CustomerStatus.ACTIVE.value)

    __table_args__ = (
        Index("idx_customers_city_status", "city", "status"),
    )


class Plan(Base):
    """Subscription Plan Table"""
    __tablename__ = "plans"

    plan_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_name: Mapped[Optional[str]] = mapped_column(String(100))
    plan_type: Mapped[Optional[str]] = mapped_column(String(30))
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    validity_days: Mapped[Optional[int]] = mapped_column(Integer)
    data_per_day_gb: Mapped[Optional[float]] = mapped_column(Float)
    call_limit_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    speed_mbps: Mapped[Optional[int]] = mapped_column(Integer)


class SimConnection(Base):
    """Mobile SIM Connection Table"""
    __tablename__ = "sim_connections"

    sim_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sim_number: Mapped[Optional[str]] = mapped_column(String(20))
    customer_id: Mapped[Optional[int]] = mapped_column(Integer)
    plan_id: Mapped[Optional[int]] = mapped_column(Integer)
    activation_date: Mapped[Optional[date]] = mapped_column(Date)
    validity_days: Mapped[Optional[int]] = mapped_column(Integer)
    data_limit_gb: Mapped[Optional[float]] = mapped_column(Float)
    call_limit_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[Optional[str]] = mapped_column(String(20))

    __table_args__ = (
        Index("ix_sim_connections_customer", "customer_id"),
        Index("ix_sim_connections_status", "status"),
    )


class FiberConnection(Base):
    """Fiber Connection Table"""
    __tablename__ = "fiber_connections"

    fiber_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer)
    plan_id: Mapped[Optional[int]] = mapped_column(Integer)
    connection_type: Mapped[Optional[str]] = mapped_column(String(30))
    installation_date: Mapped[Optional[date]] = mapped_column(Date)
    speed_mbps: Mapped[Optional[int]] = mapped_column(Integer)
    data_limit_gb: Mapped[Optional[float]] = mapped_column(Float)
    router_model: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[Optional[str]] = mapped_column(String(20))

    __table_args__ = (
        Index("ix_fiber_connections_customer", "customer_id"),
        Index("ix_fiber_connections_status", "status"),
    )


class Payment(Base):
    """Payment Table"""
    __tablename__ = "payments"

    payment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer)
    plan_id: Mapped[Optional[int]] = mapped_column(Integer)
    payment_date: Mapped[Optional[date]] = mapped_column(Date)
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    payment_method: Mapped[Optional[str]] = mapped_column(String(30))
    payment_status: Mapped[Optional[str]] = mapped_column(String(20))

    __table_args__ = (
        Index("idx_pay_method_date", "payment_method", "payment_date"),
        Index("ix_payments_customer", "customer_id"),
        Index("ix_payments_plan", "plan_id"),
    )


SOURCE_TABLES = [
    Customer.__table__,
    Plan.__table__,
    SimConnection.__table__,
    FiberConnection.__table__,
    Payment.__table__,
]


# =============================================================================
# DERIVED TABLES
# =============================================================================

class MonthlyRevenueFact(Base):
    """
    Monthly Revenue Summary Table

    One row per calendar month with at least one payment. Revenue and
    transaction count cover successful payments only.
    """
    __tablename__ = "fact_monthly_revenue"

    year_month: Mapped[str] = mapped_column(String(7), primary_key=True)  # YYYY-MM
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    successful_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CustomerRiskFlag(Base):
    """
    Customer Risk Flag Table

    Exactly one row per customer after each refresh.
    """
    __tablename__ = "customer_risk_flags"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    risk_level: Mapped[RiskLevel] = mapped_column(
        SQLEnum(
            RiskLevel,
            name="risk_level",
            values_callable=lambda levels: [level.value for level in levels],
        ),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_customer_risk_flags_level", "risk_level"),
    )


class PipelineRunLock(Base):
    """
    Pipeline Run Lock Table

    At most one lease row per pipeline name. A row past `expires_at`
    belongs to a dead run and may be taken over.
    """
    __tablename__ = "pipeline_run_locks"

    pipeline_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


DERIVED_TABLES = [
    MonthlyRevenueFact.__table__,
    CustomerRiskFlag.__table__,
    PipelineRunLock.__table__,
]
