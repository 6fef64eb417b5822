"""
Tombstone CRUD operations.

Records deleted indexed records per index and clears them once a core
snapshot has absorbed the deletion.

Dependencies: sqlalchemy, deltasearch.boundary.db.models.tombstone_model
System role: Deletion tracking persistence
"""

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import Delete, Insert, delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from deltasearch.boundary.db.CRUD.base_crud import BaseCRUD
from deltasearch.boundary.db.models.tombstone_model import IndexTombstoneModel

BATCH_SIZE = 500


class IndexTombstoneCRUD(BaseCRUD[IndexTombstoneModel]):
    """CRUD operations for IndexTombstoneModel."""

    def __init__(self) -> None:
        """Initialize IndexTombstoneCRUD with IndexTombstoneModel."""
        super().__init__(IndexTombstoneModel)

    @staticmethod
    def record_statements(
        index_name: str,
        record_id: str,
        deleted_at: datetime,
    ) -> tuple[Delete, Insert]:
        """
        Build the statements that (re)write one tombstone.

        Returned as statements so flush-time hooks can run them on the
        flush connection.

        Args:
            index_name: Index the record belonged to
            record_id: Deleted record id as string
            deleted_at: Deletion time

        Returns:
            tuple: (delete existing tombstone, insert new tombstone)
        """
        table = IndexTombstoneModel.__table__
        return (
            delete(table).where(
                table.c.index_name == index_name,
                table.c.record_id == record_id,
            ),
            insert(table).values(
                index_name=index_name,
                record_id=record_id,
                deleted_at=deleted_at,
            ),
        )

    async def record(
        self,
        session: AsyncSession,
        index_name: str,
        record_id: str,
        deleted_at: datetime,
    ) -> None:
        """Write a tombstone for a deleted record."""
        for stmt in self.record_statements(index_name, record_id, deleted_at):
            await session.execute(stmt)

    async def get_for_index(
        self,
        session: AsyncSession,
        index_name: str,
        up_to: datetime | None = None,
    ) -> Sequence[IndexTombstoneModel]:
        """
        Retrieve tombstones for an index.

        Args:
            session: Async database session
            index_name: Index name
            up_to: Only tombstones deleted at or before this time

        Returns:
            Sequence of tombstones ordered by record id
        """
        stmt = select(IndexTombstoneModel).where(IndexTombstoneModel.index_name == index_name)
        if up_to is not None:
            stmt = stmt.where(IndexTombstoneModel.deleted_at <= up_to)
        stmt = stmt.order_by(IndexTombstoneModel.record_id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def remove(
        self,
        session: AsyncSession,
        index_name: str,
        record_ids: Iterable[str],
        up_to: datetime | None = None,
    ) -> int:
        """
        Delete tombstones for the given record ids.

        Args:
            session: Async database session
            index_name: Index name
            record_ids: Record ids whose tombstones to delete
            up_to: Keep tombstones written after this time

        Returns:
            int: Number of tombstones deleted
        """
        ids = list(record_ids)
        removed = 0
        for start in range(0, len(ids), BATCH_SIZE):
            batch = ids[start:start + BATCH_SIZE]
            stmt = delete(IndexTombstoneModel).where(
                IndexTombstoneModel.index_name == index_name,
                IndexTombstoneModel.record_id.in_(batch),
            )
            if up_to is not None:
                stmt = stmt.where(IndexTombstoneModel.deleted_at <= up_to)
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            removed += result.rowcount
        return removed


index_tombstone_crud = IndexTombstoneCRUD()
