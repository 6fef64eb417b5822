"""
Job service orchestrator.

Status reporting for index build jobs. Wraps IndexJobCRUD for the API.

Dependencies: deltasearch.boundary.db.CRUD, deltasearch.boundary.db.models
System role: Build job status lookups
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from deltasearch.boundary.db.base import as_utc
from deltasearch.boundary.db.CRUD.job_crud import index_job_crud
from deltasearch.boundary.db.models.job_model import IndexJobModel, JobStatus
from deltasearch.core.exceptions import JobNotFoundError


class JobService:
    """
    Job service orchestrator.

    Read-side access to build jobs; workers drive the transitions through
    IndexJobCRUD directly.
    """

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize job service.

        Args:
            db: AsyncSession for database operations
        """
        self.db = db

    async def get_job(self, job_id: UUID) -> IndexJobModel:
        """
        Get a build job.

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        job = await index_job_crud.get_by_id(self.db, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def get_job_status(self, job_id: UUID) -> dict:
        """
        Get job status details for polling.

        Args:
            job_id: Job UUID

        Returns:
            dict: Job status information

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        return self._to_status(await self.get_job(job_id))

    @staticmethod
    def _to_status(job: IndexJobModel) -> dict:
        return {
            "id": str(job.id),
            "index_name": job.index_name,
            "target": job.target.value,
            "reason": job.reason.value,
            "status": job.status.value,
            "attempts": job.attempts,
            "worker_id": job.worker_id,
            "result": job.result,
            "created_at": as_utc(job.created_at).isoformat(),
            "updated_at": as_utc(job.updated_at).isoformat(),
            "started_at": as_utc(job.started_at).isoformat() if job.started_at else None,
            "finished_at": as_utc(job.finished_at).isoformat() if job.finished_at else None,
        }

    async def list_jobs(
        self,
        status: JobStatus,
        index_name: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """List jobs in one status, oldest first."""
        jobs = await index_job_crud.get_by_status(self.db, status, index_name, limit)
        return [self._to_status(job) for job in jobs]
