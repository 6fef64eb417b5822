"""
Index build job ORM model.

Durable queue entries for core and delta segment builds. Rows are written in
the same transaction as the record mutations that triggered them, so a
crash between commit and build never loses a job.

Dependencies: sqlalchemy, deltasearch.boundary.db.base
System role: Async build job tracking for the delta worker
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from deltasearch.boundary.db.base import Base, TimestampMixin, UUIDMixin
from deltasearch.boundary.search.segment import SegmentKind


class JobStatus(str, enum.Enum):
    """
    Build job execution states.

    QUEUED: Job persisted, awaiting worker pickup
    RUNNING: Claimed by a worker and building
    COMPLETED: Build finished (or coalesced into another job); see result
    FAILED: Build failed; result holds error details
    """

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerReason(str, enum.Enum):
    """Why a build job was requested."""

    MUTATION = "mutation"
    THRESHOLD = "threshold"
    MANUAL = "manual"
    SCHEDULE = "schedule"
    RECOVERY = "recovery"


# Allowed status transitions; terminal states have no successors
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.COMPLETED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class IndexJobModel(Base, UUIDMixin, TimestampMixin):
    """
    Index build job ORM model.

    One row per requested core or delta build. Queued jobs for the same
    (index_name, target) coalesce: enqueueing while one is queued returns
    the existing row, and claiming a job completes any older queued
    siblings as coalesced.

    Attributes:
        id: UUID primary key (auto-generated)
        index_name: Registered index the job builds
        target: Segment kind to build (core or delta)
        reason: Trigger that enqueued the job
        status: Current execution state enum (QUEUED/RUNNING/COMPLETED/FAILED)
        attempts: Number of times a worker has claimed the job
        worker_id: Identifier of the worker that last claimed the job
        started_at: When the current attempt was claimed
        finished_at: When the job reached a terminal state
        result: JSON build report on success, error details on failure
        created_at: Enqueue timestamp (UTC)
        updated_at: Last status update timestamp (UTC)

    Workflow:
        1. Mutation commit (or operator) enqueues a QUEUED row
        2. Worker claims the oldest QUEUED row → RUNNING, attempts += 1
        3. Worker builds the segment → COMPLETED with report, or FAILED with error
        4. Worker restart requeues RUNNING rows older than stale_after
    """

    __tablename__ = "index_jobs"
    __table_args__ = (
        Index("ix_index_jobs_lookup", "index_name", "target", "status"),
    )

    index_name: Mapped[str] = mapped_column(String(255), nullable=False)

    target: Mapped[SegmentKind] = mapped_column(
        Enum(SegmentKind, native_enum=False),
        nullable=False,
    )

    reason: Mapped[TriggerReason] = mapped_column(
        Enum(TriggerReason, native_enum=False),
        nullable=False,
        default=TriggerReason.MANUAL,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, native_enum=False),
        nullable=False,
        default=JobStatus.QUEUED,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    result: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Build report or error details",
    )
