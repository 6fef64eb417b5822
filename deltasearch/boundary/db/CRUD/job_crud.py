"""
Index job CRUD operations.

Provides the durable build-job queue: coalescing enqueue, atomic claiming,
validated status transitions and orphan recovery.

Dependencies: sqlalchemy, deltasearch.boundary.db.models.job_model
System role: Job persistence operations for the delta worker
"""

from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from deltasearch.boundary.db.base import as_utc, utcnow
from deltasearch.boundary.db.CRUD.base_crud import BaseCRUD
from deltasearch.boundary.db.models.job_model import (
    JOB_TRANSITIONS,
    IndexJobModel,
    JobStatus,
    TriggerReason,
)
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.core.exceptions import JobNotFoundError, JobStateError


class IndexJobCRUD(BaseCRUD[IndexJobModel]):
    """
    CRUD operations for IndexJobModel.

    Extends BaseCRUD with queue semantics: at most one queued job per
    (index, target) and at most one running build per (index, target).
    """

    def __init__(self) -> None:
        """Initialize IndexJobCRUD with IndexJobModel."""
        super().__init__(IndexJobModel)

    async def get_queued(
        self,
        session: AsyncSession,
        index_name: str,
        target: SegmentKind,
    ) -> IndexJobModel | None:
        """
        Retrieve the oldest queued job for an index and target.

        Args:
            session: Async database session
            index_name: Index name
            target: Segment kind

        Returns:
            IndexJobModel if one is queued, None otherwise
        """
        stmt = (
            select(IndexJobModel)
            .where(
                IndexJobModel.index_name == index_name,
                IndexJobModel.target == target,
                IndexJobModel.status == JobStatus.QUEUED,
            )
            .order_by(IndexJobModel.created_at, IndexJobModel.id)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def enqueue(
        self,
        session: AsyncSession,
        index_name: str,
        target: SegmentKind,
        reason: TriggerReason,
    ) -> tuple[IndexJobModel, bool]:
        """
        Queue a build job unless an equivalent one is already queued.

        Args:
            session: Async database session
            index_name: Index to build
            target: Segment kind to build
            reason: Trigger reason

        Returns:
            tuple: (job, created) where created is False when coalesced
        """
        existing = await self.get_queued(session, index_name, target)
        if existing is not None:
            return existing, False
        job = await self.create(
            session,
            index_name=index_name,
            target=target,
            reason=reason,
            status=JobStatus.QUEUED,
            attempts=0,
            result={},
        )
        return job, True

    async def get_running_targets(
        self,
        session: AsyncSession,
    ) -> set[tuple[str, SegmentKind]]:
        """Return the (index, target) pairs that currently have a running job."""
        stmt = (
            select(IndexJobModel.index_name, IndexJobModel.target)
            .where(IndexJobModel.status == JobStatus.RUNNING)
            .distinct()
        )
        result = await session.execute(stmt)
        return {(row.index_name, row.target) for row in result}

    async def claim_next(
        self,
        session: AsyncSession,
        worker_id: str,
        now: datetime | None = None,
    ) -> IndexJobModel | None:
        """
        Claim the oldest runnable queued job for a worker.

        A job is runnable when no job for the same (index, target) is
        running. The claim is a conditional UPDATE on status, so concurrent
        workers cannot both win. Older queued siblings of the claimed job
        are completed as coalesced into it.

        Args:
            session: Async database session
            worker_id: Identifier of the claiming worker
            now: Claim time (defaults to current UTC time)

        Returns:
            The claimed job in RUNNING status, or None if nothing is runnable
        """
        now = now or utcnow()
        busy = await self.get_running_targets(session)
        stmt = (
            select(IndexJobModel)
            .where(IndexJobModel.status == JobStatus.QUEUED)
            .order_by(IndexJobModel.created_at, IndexJobModel.id)
        )
        candidates = (await session.execute(stmt)).scalars().all()

        for job in candidates:
            if (job.index_name, job.target) in busy:
                continue
            claim = (
                update(IndexJobModel)
                .where(
                    IndexJobModel.id == job.id,
                    IndexJobModel.status == JobStatus.QUEUED,
                )
                .values(
                    status=JobStatus.RUNNING,
                    worker_id=worker_id,
                    started_at=now,
                    attempts=IndexJobModel.attempts + 1,
                )
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(claim)
            if result.rowcount != 1:
                busy.add((job.index_name, job.target))
                continue

            coalesce = (
                update(IndexJobModel)
                .where(
                    IndexJobModel.index_name == job.index_name,
                    IndexJobModel.target == job.target,
                    IndexJobModel.status == JobStatus.QUEUED,
                    IndexJobModel.id != job.id,
                )
                .values(
                    status=JobStatus.COMPLETED,
                    finished_at=now,
                    result={"coalesced_into": str(job.id)},
                )
                .execution_options(synchronize_session=False)
            )
            await session.execute(coalesce)
            await session.flush()
            await session.refresh(job)
            return job
        return None

    async def update_status(
        self,
        session: AsyncSession,
        id: UUID,
        status: JobStatus,
        result_data: dict | None = None,
        now: datetime | None = None,
    ) -> IndexJobModel:
        """
        Move a job to a new status, enforcing the job state machine.

        Args:
            session: Async database session
            id: Job UUID
            status: New execution status
            result_data: Job result or error details
            now: Transition time (defaults to current UTC time)

        Returns:
            Updated IndexJobModel

        Raises:
            JobNotFoundError: Job does not exist
            JobStateError: Transition is not allowed from the current status
        """
        job = await self.get_by_id(session, id)
        if job is None:
            raise JobNotFoundError(str(id))
        if status not in JOB_TRANSITIONS[job.status]:
            raise JobStateError(str(id), job.status.value, status.value)

        now = now or utcnow()
        job.status = status
        if result_data is not None:
            job.result = result_data
        if status in (JobStatus.COMPLETED, JobStatus.FAILED):
            job.finished_at = now
        elif status == JobStatus.QUEUED:
            job.worker_id = None
            job.started_at = None
        await session.flush()
        return job

    async def mark_completed(
        self,
        session: AsyncSession,
        id: UUID,
        result_data: dict,
    ) -> IndexJobModel:
        """
        Mark job as successfully completed with its build report.

        Args:
            session: Async database session
            id: Job UUID
            result_data: Build report

        Returns:
            Updated IndexJobModel
        """
        return await self.update_status(session, id, JobStatus.COMPLETED, result_data)

    async def mark_failed(
        self,
        session: AsyncSession,
        id: UUID,
        error_details: dict,
    ) -> IndexJobModel:
        """
        Mark job as failed with error details.

        Args:
            session: Async database session
            id: Job UUID
            error_details: Error information dict

        Returns:
            Updated IndexJobModel
        """
        return await self.update_status(session, id, JobStatus.FAILED, error_details)

    async def recover_orphans(
        self,
        session: AsyncSession,
        stale_after: timedelta,
        max_attempts: int,
        now: datetime | None = None,
    ) -> tuple[list[IndexJobModel], list[IndexJobModel]]:
        """
        Requeue or fail running jobs abandoned by a crashed worker.

        Args:
            session: Async database session
            stale_after: Age of started_at beyond which a running job is orphaned
            max_attempts: Jobs with this many attempts are failed, not requeued
            now: Reference time (defaults to current UTC time)

        Returns:
            tuple: (requeued jobs, failed jobs)
        """
        now = now or utcnow()
        cutoff = now - stale_after
        stmt = select(IndexJobModel).where(IndexJobModel.status == JobStatus.RUNNING)
        running = (await session.execute(stmt)).scalars().all()

        requeued: list[IndexJobModel] = []
        failed: list[IndexJobModel] = []
        for job in running:
            started = as_utc(job.started_at)
            if started is not None and started > cutoff:
                continue
            if job.attempts >= max_attempts:
                job.status = JobStatus.FAILED
                job.finished_at = now
                job.result = {
                    "error": "worker abandoned job",
                    "attempts": job.attempts,
                    "worker_id": job.worker_id,
                }
                failed.append(job)
            else:
                job.status = JobStatus.QUEUED
                job.reason = TriggerReason.RECOVERY
                job.worker_id = None
                job.started_at = None
                requeued.append(job)
        await session.flush()
        return requeued, failed

    async def get_by_status(
        self,
        session: AsyncSession,
        status: JobStatus,
        index_name: str | None = None,
        limit: int | None = None,
    ) -> Sequence[IndexJobModel]:
        """
        Retrieve jobs by execution status, oldest first.

        Args:
            session: Async database session
            status: Job execution status to filter by
            index_name: Optional index filter
            limit: Maximum number of jobs to return

        Returns:
            Sequence of IndexJobModels with matching status
        """
        stmt = select(IndexJobModel).where(IndexJobModel.status == status)
        if index_name is not None:
            stmt = stmt.where(IndexJobModel.index_name == index_name)
        stmt = stmt.order_by(IndexJobModel.created_at, IndexJobModel.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_by_status(
        self,
        session: AsyncSession,
        index_name: str | None = None,
    ) -> dict[JobStatus, int]:
        """Count jobs per status, optionally for one index."""
        stmt = select(IndexJobModel.status, func.count()).group_by(IndexJobModel.status)
        if index_name is not None:
            stmt = stmt.where(IndexJobModel.index_name == index_name)
        result = await session.execute(stmt)
        counts = {status: 0 for status in JobStatus}
        for status, count in result:
            counts[status] = count
        return counts


index_job_crud = IndexJobCRUD()
