"""
Build options and reports.

Dependencies: pydantic
System role: Segment build inputs and outputs
"""

import logging
from datetime import datetime

from pydantic import BaseModel, Field

from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import SegmentKind


class BuildOptions(BaseModel):
    """
    Per-call build switches.

    verbose raises build report logging from DEBUG to INFO. It is passed to
    every build explicitly instead of living in process state.
    """

    verbose: bool = False


class BuildReport(BaseModel):
    """Outcome of one segment build."""

    index_name: str
    kind: SegmentKind
    reason: TriggerReason
    built_at: datetime
    snapshot_at: datetime
    documents: int = Field(default=0, description="Documents in the new segment")
    carried_forward: int = Field(default=0, description="Delta documents kept from the previous segment")
    deleted: int = Field(default=0, description="Kill-list size, or tombstones absorbed by a core build")
    cleared: int = Field(default=0, description="Dirty markers cleared by a core build")
    duration_ms: float = 0.0
    delta: "BuildReport | None" = Field(default=None, description="Delta re-derived after a core build")

    def to_result(self) -> dict:
        """JSON-safe form stored on build jobs."""
        return self.model_dump(mode="json")

    def log(self, logger: logging.Logger, options: BuildOptions) -> None:
        """Log the report at INFO when verbose, DEBUG otherwise."""
        level = logging.INFO if options.verbose else logging.DEBUG
        logger.log(
            level,
            f"Built {self.kind.value} segment for {self.index_name}: "
            f"{self.documents} documents, {self.deleted} deleted, "
            f"{self.cleared} cleared in {self.duration_ms:.1f} ms",
            extra={
                "index_name": self.index_name,
                "kind": self.kind.value,
                "reason": self.reason.value,
                "documents": self.documents,
                "carried_forward": self.carried_forward,
                "deleted": self.deleted,
                "cleared": self.cleared,
                "duration_ms": round(self.duration_ms, 2),
            },
        )


BuildReport.model_rebuild()
