"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.
Provides a cached factory shared by the API, CLI and workers.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from deltasearch.configs.base import BaseSettings
from deltasearch.configs.celery_config import CelerySettings
from deltasearch.configs.database import DatabaseSettings
from deltasearch.configs.indexing import IndexingSettings
from deltasearch.configs.worker import WorkerSettings


class Settings(BaseSettings):
    """Unified application settings aggregating all config modules."""

    # Aggregated settings
    database: DatabaseSettings = DatabaseSettings()
    indexing: IndexingSettings = IndexingSettings()
    worker: WorkerSettings = WorkerSettings()
    celery: CelerySettings = CelerySettings()


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns Settings instance, cached for dependency injection.
    Environment variables loaded once at startup.

    Returns:
        Settings: Application settings instance

    Usage:
        from deltasearch.configs import get_settings
        settings = get_settings()
    """
    return Settings()
