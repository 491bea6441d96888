"""
Management Analytics Module
"""
from .kpis import (
    KpiSummary,
    arpu_by_plan_type,
    at_risk_customers,
    compute_kpi_summary,
    customers_by_city_and_type,
    problem_sims,
    top_customers_by_revenue,
    top_plans_by_revenue,
)

__all__ = [
    "KpiSummary",
    "arpu_by_plan_type",
    "at_risk_customers",
    "compute_kpi_summary",
    "customers_by_city_and_type",
    "problem_sims",
    "top_customers_by_revenue",
    "top_plans_by_revenue",
]
