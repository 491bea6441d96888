"""
Derived-Metrics Refresh Pipeline
"""
from telecom_analytics.errors import (
    DataQualityGateError,
    PipelineBusyError,
    PipelineError,
    ReplaceFailure,
    SourceUnavailableError,
)
from .aggregations import (
    DerivedViews,
    compute_views,
    customer_overview,
    customer_value,
    fiber_subscriptions,
    mobile_subscriptions,
    plan_performance,
)
from .locking import PipelineLock
from .orchestrator import (
    ArtifactResult,
    PipelineState,
    RefreshOrchestrator,
    RunResult,
    RunStatus,
)
from .reconciler import StatusReconciler, plan_deactivations
from .rollups import (
    classify_risk,
    compute_monthly_revenue,
    compute_risk_flags,
    refresh_customer_risk,
    refresh_monthly_revenue,
)

__all__ = [
    "DataQualityGateError",
    "PipelineBusyError",
    "PipelineError",
    "ReplaceFailure",
    "SourceUnavailableError",
    "DerivedViews",
    "compute_views",
    "customer_overview",
    "customer_value",
    "fiber_subscriptions",
    "mobile_subscriptions",
    "plan_performance",
    "PipelineLock",
    "ArtifactResult",
    "PipelineState",
    "RefreshOrchestrator",
    "RunResult",
    "RunStatus",
    "StatusReconciler",
    "plan_deactivations",
    "classify_risk",
    "compute_monthly_revenue",
    "compute_risk_flags",
    "refresh_customer_risk",
    "refresh_monthly_revenue",
]
