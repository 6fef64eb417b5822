"""
Database models package.

Exports:
  - IndexJobModel, JobStatus, TriggerReason: Build job ORM model and enums
  - IndexTombstoneModel: Deleted record markers

Dependencies: sqlalchemy, deltasearch.boundary.db.base
System role: Database model definitions for indexing bookkeeping
"""

from deltasearch.boundary.db.models.job_model import (
    JOB_TRANSITIONS,
    IndexJobModel,
    JobStatus,
    TriggerReason,
)
from deltasearch.boundary.db.models.tombstone_model import IndexTombstoneModel

__all__ = [
    "JOB_TRANSITIONS",
    "IndexJobModel",
    "IndexTombstoneModel",
    "JobStatus",
    "TriggerReason",
]
