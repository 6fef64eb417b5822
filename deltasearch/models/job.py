"""
Job domain models and schemas.

Request/response schemas for build job tracking.

Dependencies: pydantic
System role: Job status API contracts
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class JobStatusResponse(BaseModel):
    """Response schema for job status."""

    id: uuid.UUID
    index_name: str
    target: str
    reason: str
    status: str
    attempts: int
    worker_id: str | None = None
    result: dict
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None


class EnqueueResponse(BaseModel):
    """Response schema for a build request."""

    job_id: uuid.UUID
    index_name: str
    target: str
    status: str
    coalesced: bool = Field(description="True when an already queued job was reused")
