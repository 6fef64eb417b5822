"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: deltasearch.configs, deltasearch.application, deltasearch.boundary
System role: DI container for service injection
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deltasearch.application.services import IndexingService, JobService
from deltasearch.boundary.db.connection import get_async_db
from deltasearch.configs import Settings, get_settings


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


@lru_cache
def get_indexing_service() -> IndexingService:
    """
    Get the process-wide indexing service.

    Cached so the segment cache and merged views survive across requests.

    Returns:
        IndexingService: Service built from settings
    """
    return IndexingService.from_settings(get_settings_dependency())


def get_job_service(db: AsyncSession = Depends(get_async_db)) -> JobService:
    """
    Get job service instance.

    Args:
        db: Async database session (injected via Depends)

    Returns:
        JobService: Job service instance
    """
    return JobService(db=db)
