"""
Derived View Endpoints

Read-only access to the derived artifacts. The five analytical views are
computed on demand from the source and cached in Redis until the next
refresh; monthly revenue and customer risk are read from their
materialized tables.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import polars as pl
import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from telecom_analytics.config import PipelineSettings
from telecom_analytics.database.models import CustomerRiskFlag, MonthlyRevenueFact, RiskLevel
from telecom_analytics.pipeline.aggregations import (
    customer_overview,
    customer_value,
    fiber_subscriptions,
    mobile_subscriptions,
    plan_performance,
)
from telecom_analytics.serving.api.dependencies import (
    get_db_session,
    get_pipeline_settings,
    get_source,
)
from telecom_analytics.serving.cache import views_cache
from telecom_analytics.sources.accessor import SourceAccessor
from telecom_analytics.sources.schemas import SourceSnapshot
from telecom_analytics.transformation import normalize_snapshot

router = APIRouter()
logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """A page of view rows"""
    items: List[T]
    total: int
    limit: int
    offset: int


class CustomerOverviewRow(BaseModel):
    customer_id: int
    full_name: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[date] = None
    city: Optional[str] = None
    registration_date: Optional[datetime] = None
    customer_type: Optional[str] = None
    customer_status: Optional[str] = None
    total_sim_connections: int
    total_fiber_connections: int


class MobileSubscriptionRow(BaseModel):
    sim_id: int
    sim_number: Optional[str] = None
    customer_id: int
    full_name: Optional[str] = None
    city: Optional[str] = None
    gender: Optional[str] = None
    plan_id: int
    plan_name: Optional[str] = None
    plan_type: Optional[str] = None
    price: Optional[Decimal] = None
    activation_date: Optional[date] = None
    validity_days: Optional[int] = None
    data_limit_gb: Optional[float] = None
    call_limit_minutes: Optional[int] = None
    sim_status: Optional[str] = None


class FiberSubscriptionRow(BaseModel):
    fiber_id: int
    customer_id: int
    full_name: Optional[str] = None
    city: Optional[str] = None
    connection_type: Optional[str] = None
    plan_id: int
    plan_name: Optional[str] = None
    price: Optional[Decimal] = None
    installation_date: Optional[date] = None
    speed_mbps: Optional[int] = None
    data_limit_gb: Optional[float] = None
    router_model: Optional[str] = None
    fiber_status: Optional[str] = None


class CustomerValueRow(BaseModel):
    customer_id: int
    full_name: Optional[str] = None
    city: Optional[str] = None
    customer_type: Optional[str] = None
    customer_status: Optional[str] = None
    successful_payment_count: int
    total_revenue: Decimal
    first_payment_date: Optional[date] = None
    last_payment_date: Optional[date] = None


class PlanPerformanceRow(BaseModel):
    plan_id: int
    plan_name: Optional[str] = None
    plan_type: Optional[str] = None
    price: Optional[Decimal] = None
    unique_paying_customers: int
    successful_transaction_count: int
    total_revenue: Decimal


class MonthlyRevenueRow(BaseModel):
    year_month: str
    total_revenue: Decimal
    successful_transactions: int
    computed_at: datetime


class CustomerRiskRow(BaseModel):
    customer_id: int
    risk_level: RiskLevel
    reason: str
    updated_at: datetime


async def prepare_snapshot(source: SourceAccessor, settings: PipelineSettings) -> SourceSnapshot:
    """Fetch the source and apply the same normalization as a refresh"""
    snapshot = await source.fetch_snapshot()
    if settings.normalize_text:
        snapshot, _ = normalize_snapshot(snapshot)
    return snapshot


VIEW_BUILDERS: Dict[str, Callable[[SourceSnapshot], pl.DataFrame]] = {
    "customer-overview": lambda s: customer_overview(s.customers, s.sim_connections, s.fiber_connections),
    "mobile-subscriptions": lambda s: mobile_subscriptions(s.sim_connections, s.customers, s.plans),
    "fiber-subscriptions": lambda s: fiber_subscriptions(s.fiber_connections, s.customers, s.plans),
    "customer-value": lambda s: customer_value(s.customers, s.payments),
    "plan-performance": lambda s: plan_performance(s.plans, s.payments),
}

SORT_KEYS = {
    "customer-overview": "customer_id",
    "mobile-subscriptions": "sim_id",
    "fiber-subscriptions": "fiber_id",
    "customer-value": "customer_id",
    "plan-performance": "plan_id",
}


async def _view_rows(name: str, source: SourceAccessor, settings: PipelineSettings) -> List[Dict[str, Any]]:
    async def compute() -> List[Dict[str, Any]]:
        snapshot = await prepare_snapshot(source, settings)
        frame = VIEW_BUILDERS[name](snapshot).sort(SORT_KEYS[name])
        logger.debug("View computed", view=name, rows=frame.height)
        return frame.to_dicts()

    return await views_cache.get_or_set(name, compute, settings.views_cache_ttl_seconds)


def _page(rows: List[Dict[str, Any]], limit: int, offset: int) -> Dict[str, Any]:
    return {
        "items": rows[offset:offset + limit],
        "total": len(rows),
        "limit": limit,
        "offset": offset,
    }


@router.get("/customer-overview", response_model=Page[CustomerOverviewRow])
async def get_customer_overview(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """Customers with their SIM and fiber connection counts"""
    rows = await _view_rows("customer-overview", source, settings)
    return _page(rows, limit, offset)


@router.get("/mobile-subscriptions", response_model=Page[MobileSubscriptionRow])
async def get_mobile_subscriptions(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """SIM connections with customer and plan details"""
    rows = await _view_rows("mobile-subscriptions", source, settings)
    return _page(rows, limit, offset)


@router.get("/fiber-subscriptions", response_model=Page[FiberSubscriptionRow])
async def get_fiber_subscriptions(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """Fiber connections with customer and plan details"""
    rows = await _view_rows("fiber-subscriptions", source, settings)
    return _page(rows, limit, offset)


@router.get("/customer-value", response_model=Page[CustomerValueRow])
async def get_customer_value(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """Successful payment totals per customer"""
    rows = await _view_rows("customer-value", source, settings)
    return _page(rows, limit, offset)


@router.get("/plan-performance", response_model=Page[PlanPerformanceRow])
async def get_plan_performance(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """Paying customers, transactions and revenue per plan"""
    rows = await _view_rows("plan-performance", source, settings)
    return _page(rows, limit, offset)


@router.get("/monthly-revenue", response_model=List[MonthlyRevenueRow])
async def get_monthly_revenue(db: AsyncSession = Depends(get_db_session)):
    """Materialized monthly revenue facts, oldest month first"""
    result = await db.execute(select(MonthlyRevenueFact).order_by(MonthlyRevenueFact.year_month))
    return [
        MonthlyRevenueRow(
            year_month=fact.year_month,
            total_revenue=fact.total_revenue,
            successful_transactions=fact.successful_transactions,
            computed_at=fact.computed_at,
        )
        for fact in result.scalars().all()
    ]


@router.get("/customer-risk", response_model=Page[CustomerRiskRow])
async def get_customer_risk(
    risk_level: Optional[RiskLevel] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_session),
):
    """Materialized customer risk flags, optionally filtered by level"""
    query = select(CustomerRiskFlag)
    count_query = select(func.count()).select_from(CustomerRiskFlag)
    if risk_level is not None:
        query = query.where(CustomerRiskFlag.risk_level == risk_level)
        count_query = count_query.where(CustomerRiskFlag.risk_level == risk_level)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(CustomerRiskFlag.customer_id).limit(limit).offset(offset)
    )

    items = [
        CustomerRiskRow(
            customer_id=flag.customer_id,
            risk_level=flag.risk_level,
            reason=flag.reason,
            updated_at=flag.updated_at,
        )
        for flag in result.scalars().all()
    ]
    return Page[CustomerRiskRow](items=items, total=total, limit=limit, offset=offset)
