"""API routers."""

from deltasearch.api.routers.health import router as health_router
from deltasearch.api.routers.indexes import router as indexes_router
from deltasearch.api.routers.jobs import router as jobs_router
from deltasearch.api.routers.search import router as search_router

__all__ = ["health_router", "indexes_router", "jobs_router", "search_router"]
