"""FastAPI dependency providers."""

from deltasearch.api.deps.dependencies import (
    get_indexing_service,
    get_job_service,
    get_settings_dependency,
)

__all__ = ["get_indexing_service", "get_job_service", "get_settings_dependency"]
