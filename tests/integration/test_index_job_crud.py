"""
Test suite for IndexJobCRUD queue operations.

Tests coalescing enqueue, atomic claiming, the status state machine and
orphan recovery against an in-memory database.

System role: Verification of the durable build-job queue
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from deltasearch.boundary.db.base import as_utc
from deltasearch.boundary.db.CRUD.job_crud import IndexJobCRUD
from deltasearch.boundary.db.models.job_model import IndexJobModel, JobStatus, TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.core.exceptions import JobNotFoundError, JobStateError
from support import EPOCH


@pytest.fixture
def job_crud() -> IndexJobCRUD:
    """Provide IndexJobCRUD instance for testing."""
    return IndexJobCRUD()


async def make_job(
    session: AsyncSession,
    job_crud: IndexJobCRUD,
    index_name: str = "articles",
    target: SegmentKind = SegmentKind.DELTA,
    status: JobStatus = JobStatus.QUEUED,
    offset_seconds: int = 0,
    **kwargs,
) -> IndexJobModel:
    return await job_crud.create(
        session,
        index_name=index_name,
        target=target,
        reason=TriggerReason.MUTATION,
        status=status,
        created_at=EPOCH + timedelta(seconds=offset_seconds),
        **kwargs,
    )


class TestIndexJobCRUDEnqueue:
    """Test suite for IndexJobCRUD.enqueue()."""

    @pytest.mark.asyncio
    async def test_enqueue_should_create_queued_job(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test first enqueue creates a queued job."""
        # Act
        job, created = await job_crud.enqueue(
            test_async_db, "articles", SegmentKind.DELTA, TriggerReason.MUTATION
        )

        # Assert
        assert created is True
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 0
        assert job.result == {}

    @pytest.mark.asyncio
    async def test_enqueue_should_coalesce_with_queued_job(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test repeated enqueues return the queued job instead of adding rows."""
        # Arrange
        first, _ = await job_crud.enqueue(
            test_async_db, "articles", SegmentKind.DELTA, TriggerReason.MUTATION
        )

        # Act
        second, created = await job_crud.enqueue(
            test_async_db, "articles", SegmentKind.DELTA, TriggerReason.MANUAL
        )
        core, core_created = await job_crud.enqueue(
            test_async_db, "articles", SegmentKind.CORE, TriggerReason.MANUAL
        )

        # Assert
        assert created is False
        assert second.id == first.id
        assert core_created is True
        assert core.id != first.id


class TestIndexJobCRUDClaimNext:
    """Test suite for IndexJobCRUD.claim_next()."""

    @pytest.mark.asyncio
    async def test_claim_next_should_return_none_when_empty(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test claiming from an empty queue returns None."""
        # Act & Assert
        assert await job_crud.claim_next(test_async_db, "worker-1") is None

    @pytest.mark.asyncio
    async def test_claim_next_should_run_oldest_and_coalesce_siblings(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test the oldest job is claimed and its queued siblings complete as coalesced."""
        # Arrange
        oldest = await make_job(test_async_db, job_crud, offset_seconds=0)
        sibling = await make_job(test_async_db, job_crud, offset_seconds=5)
        other = await make_job(test_async_db, job_crud, index_name="comments", offset_seconds=1)

        # Act
        claimed = await job_crud.claim_next(test_async_db, "worker-1", now=EPOCH)
        await test_async_db.refresh(sibling)
        await test_async_db.refresh(other)

        # Assert
        assert claimed.id == oldest.id
        assert claimed.status == JobStatus.RUNNING
        assert claimed.worker_id == "worker-1"
        assert claimed.attempts == 1
        assert sibling.status == JobStatus.COMPLETED
        assert sibling.result == {"coalesced_into": str(oldest.id)}
        assert other.status == JobStatus.QUEUED

    @pytest.mark.asyncio
    async def test_claim_next_should_skip_targets_already_running(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test a queued job waits while the same index and target is building."""
        # Arrange
        await make_job(test_async_db, job_crud, status=JobStatus.RUNNING, offset_seconds=0)
        await make_job(test_async_db, job_crud, offset_seconds=1)
        core = await make_job(test_async_db, job_crud, target=SegmentKind.CORE, offset_seconds=2)

        # Act
        claimed = await job_crud.claim_next(test_async_db, "worker-1")
        nothing = await job_crud.claim_next(test_async_db, "worker-2")

        # Assert
        assert claimed.id == core.id
        assert nothing is None


class TestIndexJobCRUDUpdateStatus:
    """Test suite for IndexJobCRUD.update_status()."""

    @pytest.mark.asyncio
    async def test_mark_completed_should_store_result(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test completion stores the report and finish time."""
        # Arrange
        job = await make_job(test_async_db, job_crud)
        await job_crud.claim_next(test_async_db, "worker-1")

        # Act
        updated = await job_crud.mark_completed(test_async_db, job.id, {"documents": 3})

        # Assert
        assert updated.status == JobStatus.COMPLETED
        assert updated.result == {"documents": 3}
        assert updated.finished_at is not None

    @pytest.mark.asyncio
    async def test_terminal_job_should_reject_transition(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test completed jobs cannot be failed."""
        # Arrange
        job = await make_job(test_async_db, job_crud, status=JobStatus.COMPLETED)

        # Act & Assert
        with pytest.raises(JobStateError) as exc_info:
            await job_crud.mark_failed(test_async_db, job.id, {"error": "late"})
        assert exc_info.value.details["current"] == "completed"
        assert exc_info.value.details["target"] == "failed"

    @pytest.mark.asyncio
    async def test_missing_job_should_raise(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test updating an unknown job raises JobNotFoundError."""
        # Act & Assert
        with pytest.raises(JobNotFoundError):
            await job_crud.update_status(test_async_db, uuid.uuid4(), JobStatus.RUNNING)


class TestIndexJobCRUDRecoverOrphans:
    """Test suite for IndexJobCRUD.recover_orphans()."""

    @pytest.mark.asyncio
    async def test_recover_orphans_should_requeue_or_fail_stale_jobs(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test stale running jobs are requeued until attempts run out."""
        # Arrange
        retry = await make_job(
            test_async_db, job_crud, status=JobStatus.RUNNING,
            started_at=EPOCH, attempts=1, worker_id="dead-worker",
        )
        exhausted = await make_job(
            test_async_db, job_crud, target=SegmentKind.CORE, status=JobStatus.RUNNING,
            started_at=EPOCH, attempts=3, worker_id="dead-worker",
        )
        fresh = await make_job(
            test_async_db, job_crud, index_name="comments", status=JobStatus.RUNNING,
            started_at=EPOCH + timedelta(minutes=10), attempts=1,
        )

        # Act
        requeued, failed = await job_crud.recover_orphans(
            test_async_db,
            stale_after=timedelta(minutes=15),
            max_attempts=3,
            now=EPOCH + timedelta(minutes=20),
        )

        # Assert
        assert [job.id for job in requeued] == [retry.id]
        assert retry.status == JobStatus.QUEUED
        assert retry.reason == TriggerReason.RECOVERY
        assert retry.worker_id is None
        assert [job.id for job in failed] == [exhausted.id]
        assert exhausted.status == JobStatus.FAILED
        assert exhausted.result["error"] == "worker abandoned job"
        assert fresh.status == JobStatus.RUNNING
        assert as_utc(fresh.started_at) == EPOCH + timedelta(minutes=10)


class TestIndexJobCRUDQueries:
    """Test suite for status queries."""

    @pytest.mark.asyncio
    async def test_get_and_count_by_status(
        self,
        job_crud: IndexJobCRUD,
        test_async_db: AsyncSession,
    ) -> None:
        """Test status filters and per-status counts."""
        # Arrange
        await make_job(test_async_db, job_crud, offset_seconds=0)
        await make_job(test_async_db, job_crud, index_name="comments", offset_seconds=1)
        await make_job(test_async_db, job_crud, target=SegmentKind.CORE, status=JobStatus.FAILED)

        # Act
        queued = await job_crud.get_by_status(test_async_db, JobStatus.QUEUED)
        articles_queued = await job_crud.get_by_status(
            test_async_db, JobStatus.QUEUED, index_name="articles"
        )
        counts = await job_crud.count_by_status(test_async_db, index_name="articles")

        # Assert
        assert [job.index_name for job in queued] == ["articles", "comments"]
        assert len(articles_queued) == 1
        assert counts[JobStatus.QUEUED] == 1
        assert counts[JobStatus.FAILED] == 1
        assert counts[JobStatus.RUNNING] == 0
