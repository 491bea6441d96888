"""
Refresh Orchestrator

Runs one full refresh under the pipeline run lock:

    Idle -> Validating -> Reconciling -> Aggregating -> RollingUp -> Classifying -> Idle
                                                                         (or Failed)

Every run recomputes everything from source truth; a new run after a
failure simply starts over. Validation findings are recorded in the
result and never stop the run unless strict validation is on.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.config import PipelineSettings, get_settings
from telecom_analytics.database.models import CustomerRiskFlag, CustomerStatus, MonthlyRevenueFact
from telecom_analytics.errors import DataQualityGateError, PipelineError, ReplaceFailure
from telecom_analytics.pipeline.aggregations import DerivedViews, compute_views
from telecom_analytics.pipeline.locking import PipelineLock
from telecom_analytics.pipeline.reconciler import StatusReconciler, apply_status
from telecom_analytics.pipeline.rollups import refresh_customer_risk, refresh_monthly_revenue
from telecom_analytics.quality import ValidationReport, validate_sources
from telecom_analytics.sources.accessor import SourceAccessor
from telecom_analytics.transformation import CleaningStats, normalize_snapshot

logger = structlog.get_logger(__name__)

# failed_stage of a run that never got the run lock
LOCKING_STAGE = "locking"


class PipelineState(str, Enum):
    """Orchestrator states"""
    IDLE = "idle"
    VALIDATING = "validating"
    RECONCILING = "reconciling"
    AGGREGATING = "aggregating"
    ROLLING_UP = "rolling_up"
    CLASSIFYING = "classifying"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Outcome of a refresh run"""
    SUCCESS = "success"
    PARTIAL_FINDINGS = "partial_findings"
    FAILED = "failed"


@dataclass
class ArtifactResult:
    """Outcome of one materialized table replace"""
    name: str
    stage: str
    rows: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    """Result of run_refresh()"""
    run_id: str
    status: RunStatus
    started_at: datetime
    duration_seconds: float
    validation_report: Optional[ValidationReport] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    deactivated_customers: List[int] = field(default_factory=list)
    artifacts: List[ArtifactResult] = field(default_factory=list)
    cleaning: Optional[CleaningStats] = None

    @property
    def succeeded(self) -> bool:
        return self.status != RunStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "failed_stage": self.failed_stage,
            "error": self.error,
            "deactivated_customers": list(self.deactivated_customers),
            "artifacts": [
                {"name": a.name, "stage": a.stage, "rows": a.rows, "error": a.error}
                for a in self.artifacts
            ],
            "cleaning": {
                "strings_trimmed": self.cleaning.strings_trimmed,
                "cities_recased": self.cleaning.cities_recased,
                "amounts_negated": self.cleaning.amounts_negated,
            } if self.cleaning else None,
            "validation_report": self.validation_report.to_dict() if self.validation_report else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshOrchestrator:
    """
    Sequences validation, reconciliation, aggregation and the two
    materialized rollups.

    Example:
        orchestrator = RefreshOrchestrator(SqlSourceAccessor(factory), factory)
        result = await orchestrator.run_refresh()
    """

    def __init__(
        self,
        source: SourceAccessor,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[PipelineSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        strict_validation: Optional[bool] = None,
    ):
        self.source = source
        self._session_factory = session_factory
        self.settings = settings or get_settings().pipeline
        self._clock = clock or _utcnow
        self.strict_validation = (
            self.settings.strict_validation if strict_validation is None else strict_validation
        )

        self.state = PipelineState.IDLE
        self.state_history: List[PipelineState] = [PipelineState.IDLE]
        self.latest_views: Optional[DerivedViews] = None
        self.last_result: Optional[RunResult] = None

    def _transition(self, state: PipelineState) -> None:
        self.state = state
        self.state_history.append(state)
        logger.info("Pipeline state changed", state=state.value)

    async def _materialize(self, name: str, replace: Awaitable[int]) -> ArtifactResult:
        try:
            rows = await replace
        except ReplaceFailure as e:
            return ArtifactResult(name=name, stage=self.state.value, error=str(e))
        return ArtifactResult(name=name, stage=self.state.value, rows=rows)

    async def run_refresh(self) -> RunResult:
        """
        Run one full refresh.

        Returns:
            RunResult with status success, partial_findings or failed.
            Pipeline errors are reported in the result, not raised.
            Cancellation propagates after the lock is released.

        A run refused at the lock leaves state and last_result alone; they
        belong to whichever run holds the lock.
        """
        run_id = str(uuid.uuid4())
        with structlog.contextvars.bound_contextvars(run_id=run_id, pipeline=self.settings.name):
            return await self._execute(run_id)

    async def _execute(self, run_id: str) -> RunResult:
        started_at = self._clock()
        started = time.perf_counter()

        lock = PipelineLock(
            self._session_factory,
            self.settings.name,
            run_id,
            lease_seconds=self.settings.lock_lease_seconds,
            wait_seconds=self.settings.lock_wait_seconds,
            poll_interval_seconds=self.settings.lock_poll_interval_seconds,
            timeout_seconds=self.settings.write_timeout_seconds,
        )

        locked = False
        report: Optional[ValidationReport] = None
        cleaning: Optional[CleaningStats] = None
        deactivated: List[int] = []
        artifacts: List[ArtifactResult] = []
        failed_stage: Optional[str] = None
        error: Optional[str] = None

        logger.info("Refresh started", strict_validation=self.strict_validation)

        try:
            await lock.acquire()
            locked = True
            self.state_history = [PipelineState.IDLE]

            # Validation reports on the raw snapshot
            self._transition(PipelineState.VALIDATING)
            snapshot = await self.source.fetch_snapshot()
            report = validate_sources(snapshot, strict_mode=self.strict_validation)
            if self.strict_validation and report.has_findings:
                raise DataQualityGateError(len(report.findings))

            if self.settings.normalize_text:
                snapshot, cleaning = normalize_snapshot(snapshot)

            self._transition(PipelineState.RECONCILING)
            written = await StatusReconciler(self.source).reconcile(
                snapshot.customers, snapshot.sim_connections, snapshot.fiber_connections
            )
            deactivated = sorted(written)
            snapshot = snapshot.with_frames(
                customers=apply_status(snapshot.customers, written, CustomerStatus.INACTIVE.value)
            )

            self._transition(PipelineState.AGGREGATING)
            views = compute_views(snapshot)
            self.latest_views = views

            as_of = self._clock()

            self._transition(PipelineState.ROLLING_UP)
            artifacts.append(await self._materialize(
                MonthlyRevenueFact.__tablename__,
                refresh_monthly_revenue(
                    self._session_factory,
                    snapshot.payments,
                    computed_at=as_of,
                    timeout_seconds=self.settings.write_timeout_seconds,
                ),
            ))

            self._transition(PipelineState.CLASSIFYING)
            artifacts.append(await self._materialize(
                CustomerRiskFlag.__tablename__,
                refresh_customer_risk(
                    self._session_factory,
                    views.customer_value,
                    as_of=as_of,
                    medium_after_days=self.settings.risk_medium_after_days,
                    high_after_days=self.settings.risk_high_after_days,
                    timeout_seconds=self.settings.write_timeout_seconds,
                ),
            ))

            failures = [a for a in artifacts if not a.succeeded]
            if failures:
                failed_stage = failures[0].stage
                error = "; ".join(a.error for a in failures)
                self._transition(PipelineState.FAILED)
            else:
                self._transition(PipelineState.IDLE)

        except PipelineError as e:
            failed_stage = self.state.value if locked else LOCKING_STAGE
            error = str(e)
            logger.error("Refresh failed", stage=failed_stage, error=error, error_type=type(e).__name__)
            if locked:
                self._transition(PipelineState.FAILED)

        except asyncio.CancelledError:
            logger.warning("Refresh cancelled", stage=self.state.value if locked else LOCKING_STAGE)
            if locked:
                self._transition(PipelineState.FAILED)
            raise

        except Exception as e:
            failed_stage = self.state.value if locked else LOCKING_STAGE
            error = f"{type(e).__name__}: {e}"
            logger.exception("Refresh failed unexpectedly", stage=failed_stage)
            if locked:
                self._transition(PipelineState.FAILED)

        finally:
            await lock.release()

        if error is not None:
            status = RunStatus.FAILED
        elif report is not None and report.has_findings:
            status = RunStatus.PARTIAL_FINDINGS
        else:
            status = RunStatus.SUCCESS

        result = RunResult(
            run_id=run_id,
            status=status,
            started_at=started_at,
            duration_seconds=time.perf_counter() - started,
            validation_report=report,
            failed_stage=failed_stage,
            error=error,
            deactivated_customers=deactivated,
            artifacts=artifacts,
            cleaning=cleaning,
        )
        if locked:
            self.last_result = result

        logger.info(
            "Refresh finished",
            status=status.value,
            failed_stage=failed_stage,
            duration_seconds=round(result.duration_seconds, 3),
            findings=len(report.findings) if report else 0,
        )
        return result
