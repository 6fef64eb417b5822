"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory async database, session factory, fake clock, segment
store, index registry and a wired IndexingService
Dependencies: pytest, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from deltasearch.application.services.indexing_service import IndexingService
from deltasearch.boundary.db.base import Base
from deltasearch.boundary.search.segment_store import SegmentStore
from deltasearch.core.indexing.registry import IndexRegistry
from support import FakeClock


@pytest.fixture
async def test_engine():
    """
    Create in-memory SQLite async engine with all tables.

    Yields:
        AsyncEngine: Engine sharing one connection across sessions
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_async_db(session_factory):
    """
    Provide a test database session.

    Yields:
        AsyncSession: Session rolled back after the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> IndexRegistry:
    """Empty registry isolated from the process-wide one."""
    return IndexRegistry()


@pytest.fixture
def store(tmp_path) -> SegmentStore:
    return SegmentStore(tmp_path / "indexes")


@pytest.fixture
def service(session_factory, store, registry, clock):
    """
    Indexing service with dirty tracking installed.

    Yields:
        IndexingService: Service on the test database and fake clock
    """
    indexing_service = IndexingService(session_factory, store, registry=registry, clock=clock)
    indexing_service.install_tracking()
    yield indexing_service
    indexing_service.tracker.uninstall()


@pytest.fixture
def mock_indexing_service():
    """
    Create mock IndexingService for API tests.

    Returns:
        AsyncMock: Mocked IndexingService with async methods
    """
    return AsyncMock(spec=IndexingService)


@pytest.fixture
def job_id():
    """Generate a test job ID."""
    return uuid.uuid4()
