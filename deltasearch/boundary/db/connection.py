"""
Database connection management.

Provides SQLAlchemy engines, session factories, and the FastAPI dependency
for database session injection.

Dependencies: sqlalchemy, deltasearch.configs
System role: Database connection lifecycle management
"""

from functools import lru_cache
from typing import Any, AsyncGenerator

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from deltasearch.configs import get_settings


def _pool_kwargs(url: str) -> dict[str, Any]:
    """Pool sizing only applies to server databases; SQLite uses its own pools."""
    if url.startswith("sqlite"):
        return {}
    db_config = get_settings().database
    return {
        "pool_size": db_config.pool_size,
        "max_overflow": db_config.max_overflow,
        "pool_timeout": db_config.pool_timeout,
        "pool_pre_ping": True,
    }


def get_engine() -> Engine:
    """
    Create sync SQLAlchemy engine for schema steps (table creation, migrations).

    Returns:
        Engine: Configured SQLAlchemy engine

    Raises:
        ArgumentError: If database URL is invalid or engine creation fails
    """
    db_config = get_settings().database
    url = db_config.database_url
    return create_engine(url, echo=db_config.echo_sql, **_pool_kwargs(url))


@lru_cache
def get_async_engine() -> AsyncEngine:
    """
    Create async SQLAlchemy engine with connection pooling.

    Cached so every session factory in the process shares one pool.

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Raises:
        ArgumentError: If database URL is invalid or engine creation fails

    Usage:
        engine = get_async_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
    """
    db_config = get_settings().database
    url = db_config.async_database_url
    return create_async_engine(url, echo=db_config.echo_sql, **_pool_kwargs(url))


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Create async session factory for database operations.

    Returns async_sessionmaker bound to the shared engine with autoflush
    disabled for explicit transaction control and predictable behavior.

    Returns:
        async_sessionmaker: Async session factory configured for manual transaction control

    Usage:
        SessionFactory = get_async_session_factory()
        async with SessionFactory() as session:
            session.add(obj)
            await session.commit()
    """
    return async_sessionmaker(
        bind=get_async_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for async database session injection with automatic cleanup.

    Yields:
        AsyncSession: Async SQLAlchemy database session (scoped to request lifetime)

    Raises:
        SQLAlchemyError: Propagated from database operations
    """
    SessionFactory = get_async_session_factory()
    async with SessionFactory() as session:
        yield session
