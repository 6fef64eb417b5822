"""
Background indexing scheduler.

DeltaWorker drains the durable build-job queue; ThresholdPoller triggers
delta builds for datetime-strategy indexes once their dirty records have
settled past the threshold.

Dependencies: sqlalchemy, deltasearch.boundary.db.CRUD
System role: Async-mode build execution
"""

import asyncio
import logging
import os
import socket
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltasearch.boundary.db.base import utcnow
from deltasearch.boundary.db.CRUD.job_crud import index_job_crud
from deltasearch.boundary.db.models.job_model import IndexJobModel, TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.core.exceptions import DeltaSearchException
from deltasearch.core.indexing.core_rebuilder import CoreRebuilder
from deltasearch.core.indexing.definitions import Clock, DeltaStrategy, IndexDefinition
from deltasearch.core.indexing.delta_builder import DeltaBuilder
from deltasearch.core.indexing.registry import IndexRegistry, index_registry
from deltasearch.core.indexing.reports import BuildOptions, BuildReport
from deltasearch.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


async def _wait(stop: asyncio.Event, seconds: float) -> None:
    """Sleep up to seconds, returning early when stop is set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


class DeltaWorker:
    """
    Long-running build-job worker.

    Claims one job at a time, runs the matching build and records the
    outcome. A failing job is marked failed and the loop continues; it is
    not retried in place. Jobs left running by a crashed worker are
    recovered on start.

    Usage:
        worker = DeltaWorker(session_factory, delta_builder, core_rebuilder)
        await worker.run_forever()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        delta_builder: DeltaBuilder,
        core_rebuilder: CoreRebuilder,
        worker_id: str | None = None,
        poll_interval: float = 1.0,
        stale_after: timedelta = timedelta(minutes=15),
        max_attempts: int = 3,
        options: BuildOptions | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.delta_builder = delta_builder
        self.core_rebuilder = core_rebuilder
        self.worker_id = worker_id or default_worker_id()
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        self.max_attempts = max_attempts
        self.options = options or BuildOptions()
        self.clock = clock
        self._stop = asyncio.Event()

    async def recover(self) -> tuple[int, int]:
        """
        Requeue or fail orphaned running jobs.

        Returns:
            tuple: (requeued count, failed count)
        """
        async with self.session_factory() as session:
            requeued, failed = await index_job_crud.recover_orphans(
                session,
                stale_after=self.stale_after,
                max_attempts=self.max_attempts,
                now=self.clock(),
            )
            await session.commit()
        if requeued or failed:
            logger.warning(
                f"{__name__}:recover - Recovered orphaned jobs",
                extra={
                    "worker_id": self.worker_id,
                    "requeued": len(requeued),
                    "failed": len(failed),
                },
            )
        return len(requeued), len(failed)

    async def process_next(self) -> bool:
        """
        Claim and execute one job.

        Returns:
            bool: True if a job was processed, False if none was runnable
        """
        async with self.session_factory() as session:
            job = await index_job_crud.claim_next(session, self.worker_id, now=self.clock())
            await session.commit()
        if job is None:
            return False

        logger.info(
            f"{__name__}:process_next - Job claimed",
            extra={
                "job_id": str(job.id),
                "index_name": job.index_name,
                "target": job.target.value,
                "job_reason": job.reason.value,
                "attempts": job.attempts,
            },
        )
        try:
            report = await self._execute(job)
        except Exception as e:
            log_exception_with_context(
                logger,
                f"{__name__}:process_next - Job failed",
                e,
                job_id=str(job.id),
                index_name=job.index_name,
            )
            details = e.details if isinstance(e, DeltaSearchException) else {}
            async with self.session_factory() as session:
                await index_job_crud.mark_failed(
                    session,
                    job.id,
                    {
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "details": {key: str(value) for key, value in details.items()},
                    },
                )
                await session.commit()
            return True

        async with self.session_factory() as session:
            await index_job_crud.mark_completed(session, job.id, report.to_result())
            await session.commit()
        return True

    async def _execute(self, job: IndexJobModel) -> BuildReport:
        if job.target == SegmentKind.CORE:
            return await self.core_rebuilder.rebuild(job.index_name, job.reason, self.options)
        return await self.delta_builder.build(job.index_name, job.reason, self.options)

    async def run_once(self) -> int:
        """
        Process jobs until none is runnable.

        Returns:
            int: Number of jobs processed
        """
        processed = 0
        while await self.process_next():
            processed += 1
        return processed

    async def run_forever(self) -> None:
        """Recover orphans, then process jobs until stop() is called."""
        self._stop.clear()
        await self.recover()
        logger.info(
            f"{__name__}:run_forever - Worker started",
            extra={"worker_id": self.worker_id, "poll_interval": self.poll_interval},
        )
        while not self._stop.is_set():
            if not await self.process_next():
                await _wait(self._stop, self.poll_interval)
        logger.info(f"{__name__}:run_forever - Worker stopped", extra={"worker_id": self.worker_id})

    def stop(self) -> None:
        """Stop the loop after the current job."""
        self._stop.set()


class ThresholdPoller:
    """Runs delta builds for datetime-strategy indexes with settled changes."""

    def __init__(
        self,
        delta_builder: DeltaBuilder,
        registry: IndexRegistry | None = None,
        interval: float | None = None,
        options: BuildOptions | None = None,
    ) -> None:
        self.delta_builder = delta_builder
        self.registry = registry if registry is not None else index_registry
        self.interval = interval
        self.options = options or BuildOptions()
        self._stop = asyncio.Event()

    def threshold_indexes(self) -> list[IndexDefinition]:
        return [d for d in self.registry.definitions() if d.strategy == DeltaStrategy.DATETIME]

    def effective_interval(self) -> float:
        """Configured interval, else the smallest index threshold."""
        if self.interval is not None:
            return self.interval
        thresholds = [d.threshold.total_seconds() for d in self.threshold_indexes()]
        return max(min(thresholds), 1.0) if thresholds else 60.0

    async def poll_once(self) -> list[BuildReport]:
        """
        Build deltas for every threshold index with pending changes.

        A failing index is logged and skipped so the others still build.

        Returns:
            list[BuildReport]: Reports of the builds that ran
        """
        reports = []
        for definition in self.threshold_indexes():
            try:
                if not await self.delta_builder.pending_changes(definition.name):
                    continue
                reports.append(
                    await self.delta_builder.build(
                        definition.name, TriggerReason.THRESHOLD, self.options
                    )
                )
            except DeltaSearchException as e:
                log_exception_with_context(
                    logger,
                    f"{__name__}:poll_once - Threshold build failed",
                    e,
                    index_name=definition.name,
                )
        return reports

    async def run_forever(self) -> None:
        """Poll every effective_interval() seconds until stop() is called."""
        self._stop.clear()
        interval = self.effective_interval()
        logger.info(
            f"{__name__}:run_forever - Threshold poller started",
            extra={"interval": interval, "indexes": [d.name for d in self.threshold_indexes()]},
        )
        while not self._stop.is_set():
            await self.poll_once()
            await _wait(self._stop, interval)

    def stop(self) -> None:
        self._stop.set()
