"""
Database table creation script.

Creates all tables defined in ORM models using SQLAlchemy metadata,
including the index job and tombstone tables.

Dependencies: sqlalchemy, deltasearch.configs
System role: Database schema initialization

Usage:
    python -m deltasearch.boundary.db.create_tables
"""

import logging

from sqlalchemy import Engine

from deltasearch.boundary.db.base import Base
from deltasearch.boundary.db.connection import get_engine

# Import all models to register them with Base.metadata
from deltasearch.boundary.db.models.job_model import IndexJobModel  # noqa: F401
from deltasearch.boundary.db.models.tombstone_model import IndexTombstoneModel  # noqa: F401

logger = logging.getLogger(__name__)


def create_all_tables(engine: Engine | None = None) -> list[str]:
    """
    Create all database tables from registered ORM models.

    Idempotent: existing tables remain unchanged. Application models that
    inherit from Base are created too once their module is imported.

    Args:
        engine: Sync engine (defaults to the configured database)

    Returns:
        list[str]: Names of the tables known to the metadata

    Raises:
        SQLAlchemyError: If database connection fails or table creation fails
    """
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    tables = sorted(Base.metadata.tables)
    logger.info(f"{__name__}:create_all_tables - Tables created", extra={"tables": tables})
    return tables


def drop_all_tables(engine: Engine | None = None) -> None:
    """
    Drop all database tables and their data.

    WARNING: Irreversible data loss. Only use in development environments.
    """
    engine = engine or get_engine()
    Base.metadata.drop_all(bind=engine)
    logger.warning(f"{__name__}:drop_all_tables - All tables dropped")


if __name__ == "__main__":
    create_all_tables()
