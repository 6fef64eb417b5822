"""
Application services.

Exports:
  - IndexingService: Commit hook, builds, enqueueing, search and status
  - JobService: Build job status lookups
"""

from deltasearch.application.services.indexing_service import IndexingService, IndexStatus
from deltasearch.application.services.job_service import JobService

__all__ = ["IndexingService", "IndexStatus", "JobService"]
