"""
Index tombstone ORM model.

Remembers ids of indexed records deleted since the last core snapshot so
delta segments can carry them as a kill-list.

Dependencies: sqlalchemy, deltasearch.boundary.db.base
System role: Deletion tracking for delta segments
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from deltasearch.boundary.db.base import Base, utcnow


class IndexTombstoneModel(Base):
    """
    Deleted record marker for one index.

    Attributes:
        id: Integer primary key
        index_name: Index the deleted record belonged to
        record_id: String form of the deleted record's id
        deleted_at: Deletion time (UTC); rows at or before a core snapshot
            time are removed by that rebuild
    """

    __tablename__ = "index_tombstones"
    __table_args__ = (
        UniqueConstraint("index_name", "record_id", name="uq_index_tombstones_record"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    index_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(255), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
