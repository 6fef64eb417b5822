"""
Index segment schemas.

Pydantic models for the immutable core and delta segments persisted by
the segment store.

Dependencies: pydantic
System role: Type definitions for search index segments
"""

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SEGMENT_SCHEMA_VERSION = 1


class SegmentKind(str, enum.Enum):
    """
    Segment kinds.

    CORE: Full corpus built from a snapshot of all records
    DELTA: Only records dirtied since the core snapshot
    """

    CORE = "core"
    DELTA = "delta"


class SegmentDocument(BaseModel):
    """Single indexed record inside a segment."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Record id as string")
    fields: dict[str, str] = Field(default_factory=dict, description="Full-text field values")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Filterable values")
    version: datetime = Field(description="Record version (updated_at) when indexed")


class Segment(BaseModel):
    """
    Immutable queryable index artifact.

    deleted_ids is the kill-list: on delta segments it names records deleted
    since the core snapshot, which the merger removes from core results.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=SEGMENT_SCHEMA_VERSION)
    index_name: str
    kind: SegmentKind
    built_at: datetime
    snapshot_at: datetime
    field_weights: dict[str, float] = Field(default_factory=dict)
    documents: list[SegmentDocument] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)

    @classmethod
    def empty(
        cls,
        index_name: str,
        kind: SegmentKind,
        at: datetime,
        field_weights: dict[str, float] | None = None,
    ) -> "Segment":
        """Build a segment with no documents."""
        return cls(
            index_name=index_name,
            kind=kind,
            built_at=at,
            snapshot_at=at,
            field_weights=field_weights or {},
        )

    def document_map(self) -> dict[str, SegmentDocument]:
        """Map record id to document."""
        return {doc.id: doc for doc in self.documents}
