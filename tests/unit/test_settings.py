"""
Test suite for configuration settings.

System role: Verification of environment-driven configuration
"""

from deltasearch.configs.database import DatabaseSettings
from deltasearch.configs.indexing import IndexingSettings
from deltasearch.configs.worker import WorkerSettings


class TestDatabaseSettings:
    """Test suite for DatabaseSettings URLs."""

    def test_parts_should_build_postgres_urls(self) -> None:
        """Test connection parts build async and sync URLs."""
        # Act
        settings = DatabaseSettings(url=None, host="db", port=5433, user="u", password="p", db="search")

        # Assert
        assert settings.async_database_url == "postgresql+asyncpg://u:p@db:5433/search"
        assert settings.database_url == "postgresql+psycopg://u:p@db:5433/search"

    def test_url_override_should_map_sqlite_driver(self) -> None:
        """Test a full URL wins and sync URLs drop the async driver."""
        # Act
        settings = DatabaseSettings(url="sqlite+aiosqlite:///./search.db")

        # Assert
        assert settings.async_database_url == "sqlite+aiosqlite:///./search.db"
        assert settings.database_url == "sqlite:///./search.db"


class TestEnvironmentOverrides:
    """Test suite for environment variable mapping."""

    def test_prefixed_variables_should_apply(self, monkeypatch) -> None:
        """Test each settings group reads its own prefix."""
        # Arrange
        monkeypatch.setenv("INDEXING_VERBOSE", "true")
        monkeypatch.setenv("INDEXING_INDEX_DIR", "/tmp/segments")
        monkeypatch.setenv("WORKER_MAX_ATTEMPTS", "5")

        # Act
        indexing = IndexingSettings()
        worker = WorkerSettings()

        # Assert
        assert indexing.verbose is True
        assert str(indexing.index_dir) == "/tmp/segments"
        assert worker.max_attempts == 5
        assert worker.core_rebuild_interval is None
