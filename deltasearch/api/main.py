"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, deltasearch.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deltasearch.api.deps.dependencies import get_indexing_service
from deltasearch.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware

from .routers import health_router, indexes_router, jobs_router, search_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Builds the indexing service (loading index definitions) on startup.
    """
    logger = logging.getLogger("uvicorn")
    service = get_indexing_service()
    logger.info(f"Indexing service ready: {', '.join(service.registry.names()) or 'no indexes'}")
    yield
    get_indexing_service.cache_clear()
    logger.info("Indexing service released")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="deltasearch API",
        description="Merged core+delta full-text search over relational records",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(search_router, prefix="/api/v1")
    app.include_router(indexes_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "deltasearch.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
