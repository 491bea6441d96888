"""
Pipeline Run Lock

Serializes refresh runs across processes with a lease row in
pipeline_run_locks. The primary key on pipeline_name makes the insert the
mutual exclusion point. A lease past its expiry belongs to a dead run and
is taken over.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from telecom_analytics.database.models import PipelineRunLock
from telecom_analytics.errors import PipelineBusyError, SourceUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineLock:
    """
    Lease-based run lock keyed by pipeline name.

    Example:
        async with PipelineLock(session_factory, "telecom_metrics_refresh", run_id):
            ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pipeline_name: str,
        run_id: str,
        lease_seconds: float = 3600,
        wait_seconds: float = 0,
        poll_interval_seconds: float = 1.0,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self.pipeline_name = pipeline_name
        self.run_id = run_id
        self.lease_seconds = lease_seconds
        self.wait_seconds = wait_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock or _utcnow
        self.acquired = False

    async def _guarded(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Bound one lock statement by the timeout and translate driver errors"""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(operation, f"timed out after {self.timeout_seconds}s") from e
        except SQLAlchemyError as e:
            raise SourceUnavailableError(operation, str(e)) from e

    async def _expire_stale(self, now: datetime) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(PipelineRunLock).where(
                        PipelineRunLock.pipeline_name == self.pipeline_name,
                        PipelineRunLock.expires_at < now,
                    )
                )
        if result.rowcount:
            logger.warning("Stale pipeline lease taken over", pipeline=self.pipeline_name)

    async def _insert_lease(self, now: datetime) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(PipelineRunLock(
                        pipeline_name=self.pipeline_name,
                        run_id=self.run_id,
                        acquired_at=now,
                        expires_at=now + timedelta(seconds=self.lease_seconds),
                    ))
        except IntegrityError:
            return False
        return True

    async def _try_acquire(self) -> bool:
        now = self._clock()
        await self._guarded("acquire_lock", self._expire_stale(now))
        return await self._guarded("acquire_lock", self._insert_lease(now))

    async def _select_holder(self) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PipelineRunLock.run_id).where(
                    PipelineRunLock.pipeline_name == self.pipeline_name
                )
            )
            return result.scalar_one_or_none()

    async def _delete_lease(self) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(PipelineRunLock).where(
                        PipelineRunLock.pipeline_name == self.pipeline_name,
                        PipelineRunLock.run_id == self.run_id,
                    )
                )

    async def holder(self) -> Optional[str]:
        """Run id currently holding the lease, if any"""
        return await self._guarded("lock_holder", self._select_holder())

    async def acquire(self) -> None:
        """
        Take the lease, polling until the wait budget is spent.

        Raises:
            PipelineBusyError: Another live run holds the lease
            SourceUnavailableError: The lock table could not be reached in time
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_seconds

        while True:
            if await self._try_acquire():
                self.acquired = True
                logger.info("Pipeline lock acquired", pipeline=self.pipeline_name)
                return

            if loop.time() >= deadline:
                holder = await self.holder()
                logger.warning("Pipeline lock busy", pipeline=self.pipeline_name, holder=holder)
                raise PipelineBusyError(self.pipeline_name, holder)

            await asyncio.sleep(self.poll_interval_seconds)

    async def release(self) -> None:
        """Drop the lease if this run still owns it"""
        if not self.acquired:
            return

        try:
            await self._guarded("release_lock", self._delete_lease())
        except SourceUnavailableError as e:
            # Lease expiry still frees the lock
            logger.error("Failed to release pipeline lock", pipeline=self.pipeline_name, error=str(e))
        finally:
            self.acquired = False

        logger.info("Pipeline lock released", pipeline=self.pipeline_name)

    async def __aenter__(self) -> "PipelineLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()
