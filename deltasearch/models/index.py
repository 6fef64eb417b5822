"""
Index status schemas.

Dependencies: pydantic
System role: Index status API contracts
"""

from datetime import datetime

from pydantic import BaseModel, Field

from deltasearch.application.services.indexing_service import IndexStatus
from deltasearch.boundary.search.segment_store import SegmentInfo


class SegmentInfoResponse(BaseModel):
    """Persisted segment summary."""

    document_count: int
    deleted_count: int
    built_at: datetime
    snapshot_at: datetime
    size_bytes: int

    @classmethod
    def from_info(cls, info: SegmentInfo | None) -> "SegmentInfoResponse | None":
        if info is None:
            return None
        return cls(
            document_count=info.document_count,
            deleted_count=info.deleted_count,
            built_at=info.built_at,
            snapshot_at=info.snapshot_at,
            size_bytes=info.size_bytes,
        )


class IndexStatusResponse(BaseModel):
    """Operational status of one index."""

    name: str
    model: str
    strategy: str
    enabled: bool
    error: str | None = None
    threshold_seconds: float | None = None
    core: SegmentInfoResponse | None = None
    delta: SegmentInfoResponse | None = None
    segment_errors: dict[str, str] = Field(default_factory=dict)
    dirty_records: int = 0
    jobs: dict[str, int] = Field(default_factory=dict, description="Job counts by status")

    @classmethod
    def from_status(cls, status: IndexStatus) -> "IndexStatusResponse":
        return cls(
            name=status.name,
            model=status.model,
            strategy=status.strategy,
            enabled=status.enabled,
            error=status.error,
            threshold_seconds=status.threshold_seconds,
            core=SegmentInfoResponse.from_info(status.core),
            delta=SegmentInfoResponse.from_info(status.delta),
            segment_errors=status.segment_errors,
            dirty_records=status.dirty_records,
            jobs=status.jobs,
        )
