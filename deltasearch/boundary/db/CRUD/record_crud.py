"""
Indexed record CRUD operations.

Dirty-marker queries over any model using DeltaIndexedMixin: reading the
dirty set, snapshotting, touching and clearing markers.

Dependencies: sqlalchemy, deltasearch.boundary.db.base
System role: Record store access for segment builds
"""

from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import Update, and_, func, or_, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession

BATCH_SIZE = 500


def _batches(ids: list[Any]) -> Iterable[list[Any]]:
    for start in range(0, len(ids), BATCH_SIZE):
        yield ids[start:start + BATCH_SIZE]


def _marked_by(model: type, marked_before: datetime):
    # Rows dirtied outside the tracker have no mark time and count as eligible
    return or_(model.delta_marked_at.is_(None), model.delta_marked_at <= marked_before)


class IndexedRecordCRUD:
    """
    Dirty-marker operations parameterized by model.

    Unlike the per-model CRUD singletons, one instance serves every indexed
    model; each call names the model it operates on.
    """

    async def select_all(
        self,
        session: AsyncSession,
        model: type,
        options: Sequence[Any] = (),
    ) -> Sequence[Any]:
        """
        Snapshot every record of a model.

        Args:
            session: Async database session
            model: Indexed model class
            options: Loader options (eager relationships)

        Returns:
            Sequence of records ordered by id
        """
        stmt = select(model).options(*options).order_by(model.id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def select_dirty(
        self,
        session: AsyncSession,
        model: type,
        marked_before: datetime | None = None,
        options: Sequence[Any] = (),
    ) -> Sequence[Any]:
        """
        Retrieve dirty records.

        Args:
            session: Async database session
            model: Indexed model class
            marked_before: Only records that became dirty at or before this time
            options: Loader options (eager relationships)

        Returns:
            Sequence of dirty records ordered by id
        """
        stmt = select(model).options(*options).where(model.delta == true())
        if marked_before is not None:
            stmt = stmt.where(_marked_by(model, marked_before))
        stmt = stmt.order_by(model.id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def select_dirty_ids(self, session: AsyncSession, model: type) -> set[Any]:
        """Return ids of every dirty record."""
        stmt = select(model.id).where(model.delta == true())
        result = await session.execute(stmt)
        return set(result.scalars().all())

    async def select_dirty_versions(
        self,
        session: AsyncSession,
        model: type,
        marked_before: datetime | None = None,
    ) -> dict[Any, datetime]:
        """Map id to version (updated_at) for dirty records."""
        stmt = select(model.id, model.updated_at).where(model.delta == true())
        if marked_before is not None:
            stmt = stmt.where(_marked_by(model, marked_before))
        result = await session.execute(stmt)
        return {row.id: row.updated_at for row in result}

    async def count_dirty(
        self,
        session: AsyncSession,
        model: type,
        marked_before: datetime | None = None,
        changed_after: datetime | None = None,
    ) -> int:
        """
        Count dirty records.

        Args:
            session: Async database session
            model: Indexed model class
            marked_before: Only records dirty since at or before this time
            changed_after: Only records whose version is newer than this time

        Returns:
            int: Matching dirty record count
        """
        stmt = select(func.count()).select_from(model).where(model.delta == true())
        if marked_before is not None:
            stmt = stmt.where(_marked_by(model, marked_before))
        if changed_after is not None:
            stmt = stmt.where(model.updated_at > changed_after)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    def touch_statement(model: type, ids: list[Any], now: datetime) -> Update:
        """
        Build the statement that marks records dirty from outside the ORM.

        Bumps the version and sets the flag; delta_marked_at only moves for
        records that were clean, so re-marking a dirty record keeps its
        original dirty time.

        Args:
            model: Indexed model class
            ids: Record ids to touch
            now: Touch time

        Returns:
            Update: Core UPDATE against the model's table
        """
        table = model.__table__
        return (
            update(table)
            .where(table.c.id.in_(ids))
            .values(
                delta=True,
                delta_marked_at=func.coalesce(table.c.delta_marked_at, now),
                updated_at=now,
            )
        )

    async def touch(
        self,
        session: AsyncSession,
        model: type,
        ids: Iterable[Any],
        now: datetime,
    ) -> int:
        """
        Mark records dirty by id.

        Args:
            session: Async database session
            model: Indexed model class
            ids: Record ids
            now: Touch time

        Returns:
            int: Number of rows touched
        """
        touched = 0
        for batch in _batches(list(ids)):
            result = await session.execute(self.touch_statement(model, batch, now))
            touched += result.rowcount
        return touched

    async def clear_markers(
        self,
        session: AsyncSession,
        model: type,
        versions: Mapping[Any, datetime],
        snapshot_at: datetime,
    ) -> int:
        """
        Clear dirty markers for snapshot records unchanged since the snapshot.

        A row is cleared only when its current version equals the version
        the snapshot read and is not newer than the snapshot time. A change
        flushed before the snapshot but committed after the read carries a
        different version and stays dirty.

        Args:
            session: Async database session
            model: Indexed model class
            versions: Snapshot ids mapped to the updated_at value read
            snapshot_at: Snapshot time; records with a newer version stay dirty

        Returns:
            int: Number of records cleared
        """
        table = model.__table__
        cleared = 0
        for batch in _batches(list(versions.items())):
            stmt = (
                update(table)
                .where(
                    or_(
                        *(
                            and_(table.c.id == record_id, table.c.updated_at == version)
                            for record_id, version in batch
                        )
                    ),
                    table.c.updated_at <= snapshot_at,
                )
                .values(
                    delta=False,
                    delta_marked_at=None,
                    # keep the version; the column onupdate would otherwise bump it
                    updated_at=table.c.updated_at,
                )
            )
            result = await session.execute(stmt)
            cleared += result.rowcount
        return cleared


indexed_record_crud = IndexedRecordCRUD()
