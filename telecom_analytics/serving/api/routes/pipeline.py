"""
Pipeline Trigger Endpoints

On-demand refresh and last-run status.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from telecom_analytics.pipeline.orchestrator import RefreshOrchestrator, RunResult, RunStatus
from telecom_analytics.serving.api.dependencies import get_orchestrator
from telecom_analytics.serving.cache import kpis_cache, views_cache

router = APIRouter()
logger = structlog.get_logger(__name__)


class ArtifactOutcome(BaseModel):
    name: str
    stage: str
    rows: int
    error: Optional[str] = None


class RunResponse(BaseModel):
    """Outcome of one refresh run"""
    run_id: str
    status: RunStatus
    started_at: datetime
    duration_seconds: float
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    deactivated_customers: List[int]
    artifacts: List[ArtifactOutcome]
    finding_count: int
    validation_report: Optional[Dict[str, Any]] = None


class PipelineStatusResponse(BaseModel):
    state: str
    last_run: Optional[RunResponse] = None


def _run_response(result: RunResult) -> RunResponse:
    data = result.to_dict()
    report = result.validation_report
    return RunResponse(
        run_id=result.run_id,
        status=result.status,
        started_at=result.started_at,
        duration_seconds=result.duration_seconds,
        failed_stage=result.failed_stage,
        error=result.error,
        deactivated_customers=result.deactivated_customers,
        artifacts=data["artifacts"],
        finding_count=len(report.findings) if report else 0,
        validation_report=data["validation_report"],
    )


@router.post("/refresh", response_model=RunResponse)
async def trigger_refresh(orchestrator: RefreshOrchestrator = Depends(get_orchestrator)) -> RunResponse:
    """
    Run one full refresh now.

    The response carries the run status; a failed run is not an HTTP error.
    """
    result = await orchestrator.run_refresh()

    if result.succeeded:
        await views_cache.invalidate_all()
        await kpis_cache.invalidate_all()

    logger.info("Refresh triggered via API", run_id=result.run_id, status=result.status.value)
    return _run_response(result)


@router.get("/status", response_model=PipelineStatusResponse)
async def pipeline_status(orchestrator: RefreshOrchestrator = Depends(get_orchestrator)) -> PipelineStatusResponse:
    """Current orchestrator state and the last run in this process"""
    last = orchestrator.last_result
    return PipelineStatusResponse(
        state=orchestrator.state.value,
        last_run=_run_response(last) if last else None,
    )
