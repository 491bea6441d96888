"""
KPI Endpoints

Management KPIs computed from the current source snapshot.
"""

from dataclasses import asdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from telecom_analytics.analytics.kpis import arpu_by_plan_type, compute_kpi_summary
from telecom_analytics.config import PipelineSettings
from telecom_analytics.pipeline.aggregations import customer_value
from telecom_analytics.serving.api.dependencies import get_pipeline_settings, get_source
from telecom_analytics.serving.api.routes.views import prepare_snapshot
from telecom_analytics.serving.cache import kpis_cache
from telecom_analytics.sources.accessor import SourceAccessor

router = APIRouter()
logger = structlog.get_logger(__name__)


class CustomerSegmentCount(BaseModel):
    customer_type: Optional[str] = None
    status: Optional[str] = None
    customer_count: int


class MonthlyRevenuePoint(BaseModel):
    year_month: str
    monthly_revenue: Decimal


class CityRevenue(BaseModel):
    city: Optional[str] = None
    city_revenue: Decimal


class CitySegmentCount(BaseModel):
    city: Optional[str] = None
    customer_type: Optional[str] = None
    customer_count: int


class TopCustomer(BaseModel):
    customer_id: int
    full_name: Optional[str] = None
    city: Optional[str] = None
    successful_payment_count: int
    total_revenue: Decimal


class TopPlan(BaseModel):
    plan_id: int
    plan_name: Optional[str] = None
    plan_type: Optional[str] = None
    unique_paying_customers: int
    total_revenue: Decimal


class KpiSummaryResponse(BaseModel):
    """Headline KPIs"""
    as_of: date
    total_active_customers: int
    active_sims: int
    active_fibers: int
    total_revenue: Decimal
    customers_by_type_and_status: List[CustomerSegmentCount]
    monthly_revenue_trend: List[MonthlyRevenuePoint]
    top_cities: List[CityRevenue]
    customers_by_city_and_type: List[CitySegmentCount]
    top_customers: List[TopCustomer]
    top_plans: List[TopPlan]
    at_risk_customer_count: int
    problem_sim_count: int


class PlanTypeArpu(BaseModel):
    """Average revenue per paying user for one plan type"""
    plan_type: Optional[str] = None
    revenue: Decimal
    paying_customers: int
    arpu: Optional[Decimal] = None


@router.get("/summary", response_model=KpiSummaryResponse)
async def get_kpi_summary(
    trend_months: int = Query(12, ge=1, le=60),
    top_n: int = Query(5, ge=1, le=50),
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """Customer, connection, revenue and ranking KPIs"""
    as_of = datetime.now(timezone.utc).date()

    async def compute() -> Dict[str, Any]:
        snapshot = await prepare_snapshot(source, settings)
        summary = compute_kpi_summary(
            snapshot,
            customer_value(snapshot.customers, snapshot.payments),
            as_of,
            trend_months=trend_months,
            top_n=top_n,
            at_risk_days=settings.risk_medium_after_days,
        )
        return asdict(summary)

    key = f"summary:{as_of}:{trend_months}:{top_n}"
    return await kpis_cache.get_or_set(key, compute, settings.views_cache_ttl_seconds)


@router.get("/arpu", response_model=List[PlanTypeArpu])
async def get_arpu(
    source: SourceAccessor = Depends(get_source),
    settings: PipelineSettings = Depends(get_pipeline_settings),
):
    """ARPU per plan type; null where no customer paid"""
    async def compute() -> List[Dict[str, Any]]:
        snapshot = await prepare_snapshot(source, settings)
        return arpu_by_plan_type(snapshot.plans, snapshot.payments)

    return await kpis_cache.get_or_set("arpu", compute, settings.views_cache_ttl_seconds)
