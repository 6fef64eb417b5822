"""
Record change tracking.

Marks indexed records dirty whenever they change, through three paths:
  - Session before_flush: new and modified instances of indexed models
  - Mapper after_insert/update/delete on dependency models: touch the
    owning indexed rows through the flush connection
  - DirtyTracker.mark_dirty: explicit marking by id

Deleting an indexed instance writes a tombstone in the same transaction.
ORM bulk delete()/update() statements bypass mapper events; delete through
session.delete() or call mark_dirty for such writes.

Names of indexes touched by a session accumulate in session.info until
the session commits or rolls back; IndexingService.commit consumes them.

Dependencies: sqlalchemy, deltasearch.core.indexing.registry
System role: Dirty marker maintenance
"""

import logging
import uuid
from typing import Any, Iterable

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapper, Session, object_session
from sqlalchemy.orm.attributes import set_committed_value

from deltasearch.boundary.db.base import utcnow
from deltasearch.boundary.db.CRUD.record_crud import indexed_record_crud
from deltasearch.boundary.db.CRUD.tombstone_crud import index_tombstone_crud
from deltasearch.core.exceptions import IndexConfigurationError
from deltasearch.core.indexing.definitions import Clock, DependencySpec
from deltasearch.core.indexing.registry import IndexRegistry, index_registry

logger = logging.getLogger(__name__)

TOUCHED_KEY = "deltasearch.touched_indexes"


def touched_indexes(session: Session | AsyncSession) -> set[str]:
    """Index names touched by the session since its last commit or rollback."""
    return set(session.info.get(TOUCHED_KEY, ()))


def _remember(session: Session | None, names: Iterable[str]) -> None:
    if session is not None:
        session.info.setdefault(TOUCHED_KEY, set()).update(names)


def coerce_ids(model: type, ids: Iterable[Any]) -> list[Any]:
    """Convert string ids to UUIDs when the model's key is a UUID column."""
    column = sa_inspect(model).columns["id"]
    try:
        wants_uuid = column.type.python_type is uuid.UUID
    except NotImplementedError:
        wants_uuid = False
    coerced = []
    for value in ids:
        if wants_uuid and isinstance(value, str):
            value = uuid.UUID(value)
        coerced.append(value)
    return coerced


class DirtyTracker:
    """
    Maintains dirty markers for registered indexes.

    Args:
        registry: Registry consulted on every flush
        clock: Time source for versions, mark times and tombstones

    Usage:
        tracker = DirtyTracker()
        tracker.install()
        ...
        await tracker.mark_dirty(session, "articles", [article_id])
    """

    def __init__(self, registry: IndexRegistry | None = None, clock: Clock = utcnow) -> None:
        self.registry = registry if registry is not None else index_registry
        self.clock = clock
        self._installed = False

    def install(self) -> None:
        """Attach the session and mapper listeners (idempotent)."""
        if self._installed:
            return
        event.listen(Session, "before_flush", self._before_flush)
        event.listen(Session, "after_commit", self._forget)
        event.listen(Session, "after_rollback", self._forget)
        event.listen(Mapper, "after_insert", self._after_insert)
        event.listen(Mapper, "after_update", self._after_update)
        event.listen(Mapper, "after_delete", self._after_delete)
        self._installed = True
        logger.debug(f"{__name__}:install - Dirty tracking listeners installed")

    def uninstall(self) -> None:
        """Detach the listeners."""
        if not self._installed:
            return
        event.remove(Session, "before_flush", self._before_flush)
        event.remove(Session, "after_commit", self._forget)
        event.remove(Session, "after_rollback", self._forget)
        event.remove(Mapper, "after_insert", self._after_insert)
        event.remove(Mapper, "after_update", self._after_update)
        event.remove(Mapper, "after_delete", self._after_delete)
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    async def mark_dirty(
        self,
        session: AsyncSession,
        index_name: str,
        ids: Iterable[Any],
    ) -> int:
        """
        Mark records of an index dirty by id.

        Applies the same touch as dependency propagation: bumps the version
        and sets the flag, keeping the original mark time of rows that are
        already dirty. The caller commits.

        Args:
            session: Async database session
            index_name: Registered index name
            ids: Record ids (UUIDs or their string form)

        Returns:
            int: Number of rows touched

        Raises:
            IndexConfigurationError: Index is disabled or does not track changes
            IndexNotFoundError: Unknown index
        """
        definition = self.registry.get(index_name)
        if not definition.tracks_changes:
            raise IndexConfigurationError(
                "Index uses the none strategy and does not track changes",
                index_name=index_name,
            )
        record_ids = coerce_ids(definition.model, ids)
        if not record_ids:
            return 0

        now = self.clock()
        touched = await indexed_record_crud.touch(session, definition.model, record_ids, now)
        self._sync_loaded(session.sync_session, definition.model, record_ids, now)
        _remember(session.sync_session, [index_name])
        logger.debug(
            f"{__name__}:mark_dirty - Records marked dirty",
            extra={"index_name": index_name, "requested": len(record_ids), "touched": touched},
        )
        return touched

    # Session listeners

    def _before_flush(self, session: Session, flush_context: Any, instances: Any) -> None:
        now = self.clock()
        changed = list(session.new) + [
            obj for obj in session.dirty if session.is_modified(obj)
        ]
        names: set[str] = set()
        for obj in changed:
            definitions = self.registry.for_instance(obj)
            if not definitions:
                continue
            obj.updated_at = now
            tracking = [d for d in definitions if d.tracks_changes]
            if not tracking:
                continue
            if not obj.delta:
                obj.delta = True
                obj.delta_marked_at = now
            names.update(d.name for d in tracking)
        for obj in session.deleted:
            names.update(d.name for d in self.registry.for_instance(obj) if d.tracks_changes)
        if names:
            _remember(session, names)

    def _forget(self, session: Session) -> None:
        session.info.pop(TOUCHED_KEY, None)

    # Mapper listeners

    def _after_insert(self, mapper: Mapper, connection: Any, target: Any) -> None:
        self._propagate(connection, target)

    def _after_update(self, mapper: Mapper, connection: Any, target: Any) -> None:
        self._propagate(connection, target, include_previous=True)

    def _after_delete(self, mapper: Mapper, connection: Any, target: Any) -> None:
        now = self.clock()
        definitions = [d for d in self.registry.for_instance(target) if d.tracks_changes]
        for definition in definitions:
            record_id = definition.record_id(target)
            for stmt in index_tombstone_crud.record_statements(definition.name, record_id, now):
                connection.execute(stmt)
        if definitions:
            logger.debug(
                f"{__name__}:_after_delete - Tombstones written",
                extra={"indexes": [d.name for d in definitions], "record_id": str(target.id)},
            )
        self._propagate(connection, target)

    def _propagate(self, connection: Any, target: Any, include_previous: bool = False) -> None:
        dependents = self.registry.dependents_of(target)
        if not dependents:
            return
        now = self.clock()
        session = object_session(target)
        for definition, dependency in dependents:
            owner_ids = dependency.owner_ids(target)
            if include_previous:
                owner_ids.extend(self._previous_owner_ids(target, dependency))
            owner_ids = list(dict.fromkeys(owner_ids))
            if not owner_ids:
                continue
            connection.execute(
                indexed_record_crud.touch_statement(definition.model, owner_ids, now)
            )
            if session is not None:
                self._sync_loaded(session, definition.model, owner_ids, now)
            _remember(session, [definition.name])
            logger.debug(
                f"{__name__}:_propagate - Owners touched",
                extra={
                    "index_name": definition.name,
                    "dependency": type(target).__name__,
                    "owners": len(owner_ids),
                },
            )

    @staticmethod
    def _previous_owner_ids(target: Any, dependency: DependencySpec) -> list[Any]:
        """Owner ids the record pointed at before this flush (re-parented children)."""
        source = dependency.owner_id
        if not isinstance(source, str) or "." in source:
            return []
        state = sa_inspect(target)
        if source not in state.attrs:
            return []
        return [value for value in state.attrs[source].history.deleted if value is not None]

    @staticmethod
    def _sync_loaded(session: Session, model: type, ids: list[Any], now: Any) -> None:
        """Mirror a touch onto instances already loaded in the session."""
        mapper = sa_inspect(model)
        for record_id in ids:
            key = mapper.identity_key_from_primary_key([record_id])
            obj = session.identity_map.get(key)
            if obj is None:
                continue
            set_committed_value(obj, "delta_marked_at", obj.delta_marked_at or now)
            set_committed_value(obj, "delta", True)
            set_committed_value(obj, "updated_at", now)
