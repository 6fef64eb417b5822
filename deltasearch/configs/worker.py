"""
Worker and scheduler configuration settings.

Controls the delta job worker loop, orphan recovery and periodic cadences.

Dependencies: pydantic, pydantic_settings
System role: Background indexing configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from deltasearch.configs.base import BaseSettings


class WorkerSettings(BaseSettings):
    """Job worker and periodic task configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WORKER_",
        case_sensitive=False,
        extra="ignore",
    )

    poll_interval: float = Field(
        default=1.0,
        description="Seconds the worker sleeps when the job queue is empty",
        gt=0,
    )
    stale_after: float = Field(
        default=900.0,
        description="Seconds after which a running job is considered orphaned",
        gt=0,
    )
    max_attempts: int = Field(
        default=3,
        description="Attempts before an orphaned job is failed instead of requeued",
        ge=1,
    )
    threshold_poll_interval: float | None = Field(
        default=None,
        description="Seconds between threshold polls (defaults to the smallest index threshold)",
    )
    core_rebuild_interval: float | None = Field(
        default=None,
        description="Seconds between scheduled core rebuilds (None disables the schedule)",
    )
    drain_interval: float | None = Field(
        default=None,
        description="Seconds between Celery job queue drains (None when a dedicated worker runs)",
    )
