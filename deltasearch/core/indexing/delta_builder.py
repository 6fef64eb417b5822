"""
Delta segment builder.

Builds the delta segment of an index from its dirty records and
atomically replaces the previous delta segment.

Dependencies: sqlalchemy, deltasearch.boundary.search
System role: Delta index builds
"""

import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltasearch.boundary.db.base import as_utc, utcnow
from deltasearch.boundary.db.CRUD.record_crud import indexed_record_crud
from deltasearch.boundary.db.CRUD.tombstone_crud import index_tombstone_crud
from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import Segment, SegmentDocument, SegmentKind
from deltasearch.boundary.search.segment_store import SegmentStore
from deltasearch.core.exceptions import (
    IndexConfigurationError,
    SegmentBuildError,
    SegmentUnavailableError,
)
from deltasearch.core.indexing.definitions import Clock, DeltaStrategy, IndexDefinition
from deltasearch.core.indexing.registry import IndexRegistry, index_registry
from deltasearch.core.indexing.reports import BuildOptions, BuildReport
from deltasearch.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


class DeltaBuilder:
    """
    Builds delta segments.

    For datetime-strategy indexes only records dirty for at least the
    threshold are read fresh. Records that are dirty but still settling keep
    the entry they had in the previous delta segment, so a record never falls
    back to its core state between builds.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: SegmentStore,
        registry: IndexRegistry | None = None,
        clock: Clock = utcnow,
    ) -> None:
        """
        Initialize delta builder.

        Args:
            session_factory: Factory for short-lived read sessions
            store: Segment store holding the served segments
            registry: Index registry (defaults to the global registry)
            clock: Time source for build and eligibility times
        """
        self.session_factory = session_factory
        self.store = store
        self.registry = registry if registry is not None else index_registry
        self.clock = clock

    async def build(
        self,
        index_name: str,
        reason: TriggerReason = TriggerReason.MANUAL,
        options: BuildOptions | None = None,
    ) -> BuildReport:
        """
        Build and publish the delta segment of an index.

        Args:
            index_name: Registered index name
            reason: Trigger recorded on the report
            options: Build switches

        Returns:
            BuildReport: Build outcome

        Raises:
            IndexConfigurationError: Index is disabled or uses the none strategy
            IndexNotFoundError: Unknown index
            SegmentBuildError: Build failed; the previous delta is still served
        """
        definition = self.registry.get(index_name)
        if not definition.tracks_changes:
            raise IndexConfigurationError(
                "Index uses the none strategy and has no delta segment",
                index_name=index_name,
            )
        options = options or BuildOptions()

        async with self.store.writer_lock(index_name, SegmentKind.DELTA):
            started = time.perf_counter()
            now = self.clock()
            try:
                segment, carried = await self._assemble(definition, now)
                await asyncio.to_thread(self.store.replace, segment)
            except Exception as e:
                log_exception_with_context(
                    logger,
                    f"{__name__}:build - Delta build failed",
                    e,
                    index_name=index_name,
                    reason=reason.value,
                )
                raise SegmentBuildError(
                    f"Delta build failed for {index_name}: {e}",
                    index_name,
                    SegmentKind.DELTA.value,
                    details={"error_type": type(e).__name__},
                ) from e

        report = BuildReport(
            index_name=index_name,
            kind=SegmentKind.DELTA,
            reason=reason,
            built_at=segment.built_at,
            snapshot_at=segment.snapshot_at,
            documents=len(segment.documents),
            carried_forward=carried,
            deleted=len(segment.deleted_ids),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        report.log(logger, options)
        return report

    async def _assemble(self, definition: IndexDefinition, now) -> tuple[Segment, int]:
        model = definition.model
        async with self.session_factory() as session:
            if definition.strategy == DeltaStrategy.DATETIME:
                records = await indexed_record_crud.select_dirty(
                    session,
                    model,
                    marked_before=now - definition.threshold,
                    options=definition.load_options,
                )
                dirty_ids = {str(i) for i in await indexed_record_crud.select_dirty_ids(session, model)}
            else:
                records = await indexed_record_crud.select_dirty(
                    session, model, options=definition.load_options
                )
                dirty_ids = {definition.record_id(r) for r in records}
            documents = {doc.id: doc for doc in (definition.document(r) for r in records)}
            tombstones = await index_tombstone_crud.get_for_index(session, definition.name)

        carried: list[SegmentDocument] = []
        settling = dirty_ids - documents.keys()
        if settling:
            previous = self._previous(definition.name)
            if previous is not None:
                carried = [doc for doc in previous.documents if doc.id in settling]
        for doc in carried:
            documents[doc.id] = doc

        segment = Segment(
            index_name=definition.name,
            kind=SegmentKind.DELTA,
            built_at=now,
            snapshot_at=now,
            field_weights=definition.field_weights(),
            documents=[documents[key] for key in sorted(documents)],
            deleted_ids=sorted({t.record_id for t in tombstones} - documents.keys()),
        )
        return segment, len(carried)

    def _previous(self, index_name: str) -> Segment | None:
        try:
            return self.store.load(index_name, SegmentKind.DELTA)
        except SegmentUnavailableError as e:
            logger.warning(
                f"{__name__}:_previous - Previous delta unreadable, nothing carried forward",
                extra={"index_name": index_name, "reason": e.details.get("reason")},
            )
            return None

    async def pending_changes(self, index_name: str) -> bool:
        """
        Whether a threshold poll should rebuild the delta of an index.

        True when an eligible dirty record is missing from the served delta
        (or present at an older version), or a deletion is not yet on its
        kill-list.
        """
        definition = self.registry.get(index_name)
        if definition.strategy != DeltaStrategy.DATETIME:
            return False
        now = self.clock()
        async with self.session_factory() as session:
            versions = await indexed_record_crud.select_dirty_versions(
                session, definition.model, marked_before=now - definition.threshold
            )
            tombstones = await index_tombstone_crud.get_for_index(session, index_name)

        current = self._previous(index_name)
        served = current.document_map() if current is not None else {}
        for record_id, version in versions.items():
            doc = served.get(str(record_id))
            if doc is None or as_utc(doc.version) != as_utc(version):
                return True
        killed = set(current.deleted_ids) if current is not None else set()
        return any(t.record_id not in killed for t in tombstones)
