"""
Job API endpoints.

Routes: GET /jobs, GET /jobs/{id}

Dependencies: deltasearch.application.services.job_service, deltasearch.models
System role: Build job status HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from deltasearch.api.deps import get_job_service
from deltasearch.application.services.job_service import JobService
from deltasearch.boundary.db.models.job_model import JobStatus
from deltasearch.core.exceptions import JobNotFoundError
from deltasearch.models.job import JobStatusResponse

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: UUID,
    job_service: JobService = Depends(get_job_service),
) -> dict:
    """
    Get build job status for polling.

    Args:
        job_id: Job UUID
        job_service: Injected JobService

    Returns:
        dict: Job status with index name, target, status, attempts and
            result (build report, coalesced_into, or error details)

    Raises:
        HTTPException(404): Job not found

    Example Response:
        {
            "id": "123e4567-e89b-12d3-a456-426614174000",
            "index_name": "articles",
            "target": "delta",
            "reason": "mutation",
            "status": "completed",
            "attempts": 1,
            "worker_id": "host:4242",
            "result": {"documents": 3, "deleted": 1, "duration_ms": 12.5},
            ...
        }
    """
    try:
        return await job_service.get_job_status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("", response_model=list[JobStatusResponse])
async def list_jobs(
    status: JobStatus = Query(default=JobStatus.QUEUED),
    index_name: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    job_service: JobService = Depends(get_job_service),
) -> list[dict]:
    """
    List build jobs in one status, oldest first.

    Args:
        status: Job status to list
        index_name: Restrict to one index
        limit: Maximum jobs returned
        job_service: Injected JobService

    Returns:
        list[dict]: Job statuses in the same shape as GET /jobs/{id}
    """
    return await job_service.list_jobs(status, index_name=index_name, limit=limit)
