"""
Indexing Celery tasks.

Tasks: poll_threshold_indexes, rebuild_core_indexes, drain_index_jobs

Each task runs its coroutine on a fresh event loop with its own engine,
since Celery workers call tasks synchronously.

Dependencies: celery, sqlalchemy, deltasearch.application
System role: Periodic indexing triggers
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from deltasearch.application.services import IndexingService
from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.configs import get_settings
from deltasearch.workers import celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_thresholds(service: IndexingService) -> list[dict]:
    """Run one threshold poll; returns the build reports."""
    reports = await service.poller().poll_once()
    return [report.to_result() for report in reports]


async def schedule_core_rebuilds(service: IndexingService) -> list[dict]:
    """Queue a core rebuild for every enabled index."""
    queued = []
    for name in service.registry.names():
        job, created = await service.enqueue(name, SegmentKind.CORE, TriggerReason.SCHEDULE)
        queued.append({"index_name": name, "job_id": str(job.id), "coalesced": not created})
    return queued


async def drain_jobs(service: IndexingService, worker_id: str) -> dict:
    """Recover orphans, then process queued jobs until none is runnable."""
    worker_config = get_settings().worker
    worker = service.worker(
        worker_id=worker_id,
        poll_interval=worker_config.poll_interval,
        stale_after=timedelta(seconds=worker_config.stale_after),
        max_attempts=worker_config.max_attempts,
    )
    requeued, failed = await worker.recover()
    processed = await worker.run_once()
    return {"processed": processed, "requeued": requeued, "failed": failed}


def run_with_service(func: Callable[[IndexingService], Awaitable[T]]) -> T:
    """Run a coroutine function against a task-scoped indexing service."""

    async def runner() -> T:
        settings = get_settings()
        engine = create_async_engine(
            settings.database.async_database_url,
            echo=settings.database.echo_sql,
            poolclass=NullPool,
        )
        try:
            session_factory = async_sessionmaker(
                bind=engine, autoflush=False, expire_on_commit=False
            )
            service = IndexingService.from_settings(settings, session_factory=session_factory)
            return await func(service)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@celery_app.task(name="deltasearch.workers.tasks.indexing.poll_threshold_indexes")
def poll_threshold_indexes() -> list[dict]:
    """
    Build deltas for datetime-strategy indexes with settled changes.

    Returns:
        list[dict]: Build reports of the deltas that were rebuilt
    """
    reports = run_with_service(poll_thresholds)
    logger.info(
        f"{__name__}:poll_threshold_indexes - Threshold poll finished",
        extra={"builds": len(reports)},
    )
    return reports


@celery_app.task(name="deltasearch.workers.tasks.indexing.rebuild_core_indexes")
def rebuild_core_indexes() -> list[dict]:
    """
    Queue scheduled core rebuilds for every index.

    Returns:
        list[dict]: Queued job ids per index
    """
    return run_with_service(schedule_core_rebuilds)


@celery_app.task(bind=True, name="deltasearch.workers.tasks.indexing.drain_index_jobs")
def drain_index_jobs(self) -> dict:
    """
    Drain the build-job queue.

    Returns:
        dict: Processed, requeued and failed job counts
    """
    worker_id = f"celery:{self.request.hostname or 'local'}"
    return run_with_service(lambda service: drain_jobs(service, worker_id))
