"""
API request/response schemas.

Exports:
  - SearchResponse, SearchHitResponse: Search results
  - IndexStatusResponse, SegmentInfoResponse: Index status
  - JobStatusResponse, EnqueueResponse: Build jobs
  - ErrorResponse: Error body
"""

from deltasearch.models.common import ErrorResponse
from deltasearch.models.index import IndexStatusResponse, SegmentInfoResponse
from deltasearch.models.job import EnqueueResponse, JobStatusResponse
from deltasearch.models.search import SearchHitResponse, SearchResponse

__all__ = [
    "EnqueueResponse",
    "ErrorResponse",
    "IndexStatusResponse",
    "JobStatusResponse",
    "SearchHitResponse",
    "SearchResponse",
    "SegmentInfoResponse",
]
