"""
Core segment rebuilder.

Rebuilds the full core segment of an index from a snapshot, then clears
the dirty markers of exactly the records the snapshot captured and
re-derives the delta segment from whatever is still dirty.

Dependencies: sqlalchemy, deltasearch.boundary.search
System role: Full index rebuilds
"""

import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltasearch.boundary.db.base import utcnow
from deltasearch.boundary.db.CRUD.record_crud import indexed_record_crud
from deltasearch.boundary.db.CRUD.tombstone_crud import index_tombstone_crud
from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import Segment, SegmentKind
from deltasearch.boundary.search.segment_store import SegmentStore
from deltasearch.core.exceptions import SegmentBuildError
from deltasearch.core.indexing.definitions import Clock
from deltasearch.core.indexing.delta_builder import DeltaBuilder
from deltasearch.core.indexing.registry import IndexRegistry, index_registry
from deltasearch.core.indexing.reports import BuildOptions, BuildReport
from deltasearch.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


class CoreRebuilder:
    """
    Rebuilds core segments.

    Safe against concurrent mutations: markers are only cleared for
    snapshot records whose version still matches the one the snapshot read,
    so a record changed mid-rebuild stays dirty and lands in the next delta.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: SegmentStore,
        delta_builder: DeltaBuilder,
        registry: IndexRegistry | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.delta_builder = delta_builder
        self.registry = registry if registry is not None else index_registry
        self.clock = clock

    async def rebuild(
        self,
        index_name: str,
        reason: TriggerReason = TriggerReason.MANUAL,
        options: BuildOptions | None = None,
    ) -> BuildReport:
        """
        Rebuild the core segment of an index.

        Steps:
            1. Snapshot all records and tombstones at T0
            2. Write the core segment atomically
            3. Clear markers of snapshot records still at their snapshot version and
               drop the absorbed tombstones
            4. Re-derive the delta segment

        Args:
            index_name: Registered index name
            reason: Trigger recorded on the report
            options: Build switches

        Returns:
            BuildReport: Core build outcome with the follow-up delta report

        Raises:
            IndexConfigurationError: Index is disabled
            IndexNotFoundError: Unknown index
            SegmentBuildError: Core write failed (nothing changed), or the
                follow-up delta build failed (core already published)
        """
        definition = self.registry.get(index_name)
        options = options or BuildOptions()

        async with self.store.writer_lock(index_name, SegmentKind.CORE):
            started = time.perf_counter()
            snapshot_at = self.clock()
            try:
                async with self.session_factory() as session:
                    records = await indexed_record_crud.select_all(
                        session, definition.model, options=definition.load_options
                    )
                    documents = [definition.document(r) for r in records]
                    versions = {r.id: r.updated_at for r in records}
                    tombstones = await index_tombstone_crud.get_for_index(
                        session, index_name, up_to=snapshot_at
                    )
                    absorbed = [t.record_id for t in tombstones]

                segment = Segment(
                    index_name=index_name,
                    kind=SegmentKind.CORE,
                    built_at=self.clock(),
                    snapshot_at=snapshot_at,
                    field_weights=definition.field_weights(),
                    documents=sorted(documents, key=lambda doc: doc.id),
                )
                await asyncio.to_thread(self.store.replace, segment)
            except Exception as e:
                log_exception_with_context(
                    logger,
                    f"{__name__}:rebuild - Core build failed",
                    e,
                    index_name=index_name,
                    reason=reason.value,
                )
                raise SegmentBuildError(
                    f"Core build failed for {index_name}: {e}",
                    index_name,
                    SegmentKind.CORE.value,
                    details={"error_type": type(e).__name__},
                ) from e

            cleared = 0
            removed = 0
            if definition.tracks_changes:
                async with self.session_factory() as session:
                    cleared = await indexed_record_crud.clear_markers(
                        session, definition.model, versions, snapshot_at
                    )
                    removed = await index_tombstone_crud.remove(
                        session, index_name, absorbed, up_to=snapshot_at
                    )
                    await session.commit()

        report = BuildReport(
            index_name=index_name,
            kind=SegmentKind.CORE,
            reason=reason,
            built_at=segment.built_at,
            snapshot_at=snapshot_at,
            documents=len(segment.documents),
            deleted=removed,
            cleared=cleared,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        report.log(logger, options)

        if definition.tracks_changes:
            report.delta = await self.delta_builder.build(index_name, reason, options)
        return report
