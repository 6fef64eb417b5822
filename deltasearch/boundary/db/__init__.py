"""
Database boundary.

Declarative base and mixins, connection factories, ORM models, CRUD and
schema steps.
"""

from deltasearch.boundary.db.base import (
    Base,
    DeltaIndexedMixin,
    TimestampMixin,
    UUIDMixin,
    as_utc,
    utcnow,
)
from deltasearch.boundary.db.connection import (
    get_async_db,
    get_async_engine,
    get_async_session_factory,
    get_engine,
)

__all__ = [
    "Base",
    "DeltaIndexedMixin",
    "TimestampMixin",
    "UUIDMixin",
    "as_utc",
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
    "get_engine",
    "utcnow",
]
