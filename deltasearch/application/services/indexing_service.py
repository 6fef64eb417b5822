"""
Indexing service orchestrator.

Single entry point wiring dirty tracking, delta and core builds, the job
queue and merged search over one segment store.

Dependencies: sqlalchemy, deltasearch.core.indexing, deltasearch.boundary
System role: Indexing orchestration for the API, CLI and workers
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltasearch.boundary.db.base import utcnow
from deltasearch.boundary.db.CRUD.job_crud import index_job_crud
from deltasearch.boundary.db.CRUD.record_crud import indexed_record_crud
from deltasearch.boundary.db.models.job_model import IndexJobModel, JobStatus, TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.boundary.search.segment_store import SegmentInfo, SegmentStore
from deltasearch.configs import Settings, get_settings
from deltasearch.core.exceptions import IndexConfigurationError, SegmentUnavailableError
from deltasearch.core.indexing.core_rebuilder import CoreRebuilder
from deltasearch.core.indexing.definitions import Clock, DeltaStrategy
from deltasearch.core.indexing.delta_builder import DeltaBuilder
from deltasearch.core.indexing.dirty_tracking import DirtyTracker, coerce_ids, touched_indexes
from deltasearch.core.indexing.merger import IndexMerger, SearchHit, SearchResults
from deltasearch.core.indexing.registry import IndexRegistry, index_registry, load_indexes_module
from deltasearch.core.indexing.reports import BuildOptions, BuildReport
from deltasearch.core.indexing.scheduler import DeltaWorker, ThresholdPoller

logger = logging.getLogger(__name__)


@dataclass
class IndexStatus:
    """Operational snapshot of one index."""

    name: str
    model: str
    strategy: str
    enabled: bool
    error: str | None = None
    threshold_seconds: float | None = None
    core: SegmentInfo | None = None
    delta: SegmentInfo | None = None
    segment_errors: dict[str, str] = field(default_factory=dict)
    dirty_records: int = 0
    jobs: dict[str, int] = field(default_factory=dict)


class IndexingService:
    """
    Indexing orchestrator.

    Usage:
        service = IndexingService.from_settings()
        service.install_tracking()

        async with service.session_factory() as session:
            session.add(Article(title="Delta indexing"))
            await service.commit(session)

        results = await service.search("articles", "delta")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: SegmentStore,
        registry: IndexRegistry | None = None,
        clock: Clock = utcnow,
        verbose: bool = False,
        default_limit: int = 20,
        max_limit: int = 200,
    ) -> None:
        """
        Initialize indexing service.

        Args:
            session_factory: Factory for short-lived sessions
            store: Segment store
            registry: Index registry (defaults to the global registry)
            clock: Time source shared by tracking and builds
            verbose: Default for BuildOptions.verbose
            default_limit: Search page size when none is given
            max_limit: Upper bound on search page size
        """
        self.session_factory = session_factory
        self.store = store
        self.registry = registry if registry is not None else index_registry
        self.clock = clock
        self.verbose = verbose
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.tracker = DirtyTracker(self.registry, clock)
        self.delta_builder = DeltaBuilder(session_factory, store, self.registry, clock)
        self.core_rebuilder = CoreRebuilder(
            session_factory, store, self.delta_builder, self.registry, clock
        )
        self.merger = IndexMerger(store, self.registry)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> "IndexingService":
        """Build the service from application settings, loading the indexes module."""
        from deltasearch.boundary.db.connection import get_async_session_factory

        settings = settings or get_settings()
        if settings.indexing.indexes_module:
            load_indexes_module(settings.indexing.indexes_module)
        return cls(
            session_factory=session_factory or get_async_session_factory(),
            store=SegmentStore(settings.indexing.index_dir),
            verbose=settings.indexing.verbose,
            default_limit=settings.indexing.default_search_limit,
            max_limit=settings.indexing.max_search_limit,
        )

    def install_tracking(self) -> None:
        self.tracker.install()

    def options(self, verbose: bool | None = None) -> BuildOptions:
        """Resolve the verbosity switch for one build call."""
        return BuildOptions(verbose=self.verbose if verbose is None else verbose)

    async def commit(self, session: AsyncSession, verbose: bool | None = None) -> list[BuildReport]:
        """
        Commit a session and apply the trigger policy of each touched index.

        Delayed indexes get a coalesced delta job in the same transaction;
        synchronous indexes are rebuilt inline after the commit. Datetime
        and none indexes are left to the poller and core rebuilds.

        Args:
            session: Session holding the mutations
            verbose: Override for build verbosity

        Returns:
            list[BuildReport]: Reports of the synchronous builds

        Raises:
            SegmentBuildError: A synchronous build failed after the commit;
                the mutation is committed and stays dirty
        """
        await session.flush()
        names = touched_indexes(session)
        definitions = [d for d in self.registry.definitions() if d.name in names]

        for definition in definitions:
            if definition.strategy == DeltaStrategy.DELAYED:
                await index_job_crud.enqueue(
                    session, definition.name, SegmentKind.DELTA, TriggerReason.MUTATION
                )
        await session.commit()

        reports = []
        for definition in definitions:
            if definition.strategy == DeltaStrategy.SYNCHRONOUS:
                reports.append(
                    await self.delta_builder.build(
                        definition.name, TriggerReason.MUTATION, self.options(verbose)
                    )
                )
        return reports

    async def mark_dirty(self, session: AsyncSession, index_name: str, ids: Sequence[Any]) -> int:
        """Explicitly mark records dirty; commit through commit() to trigger builds."""
        return await self.tracker.mark_dirty(session, index_name, ids)

    async def build_delta(
        self,
        index_name: str,
        reason: TriggerReason = TriggerReason.MANUAL,
        verbose: bool | None = None,
    ) -> BuildReport:
        return await self.delta_builder.build(index_name, reason, self.options(verbose))

    async def rebuild_core(
        self,
        index_name: str,
        reason: TriggerReason = TriggerReason.MANUAL,
        verbose: bool | None = None,
    ) -> BuildReport:
        return await self.core_rebuilder.rebuild(index_name, reason, self.options(verbose))

    async def rebuild_all(
        self,
        reason: TriggerReason = TriggerReason.MANUAL,
        verbose: bool | None = None,
    ) -> list[BuildReport]:
        """Rebuild the core segment of every enabled index."""
        return [
            await self.rebuild_core(definition.name, reason, verbose)
            for definition in self.registry.definitions()
        ]

    async def build_all_deltas(
        self,
        reason: TriggerReason = TriggerReason.MANUAL,
        verbose: bool | None = None,
    ) -> list[BuildReport]:
        """Rebuild the delta segment of every enabled index that tracks changes."""
        return [
            await self.build_delta(definition.name, reason, verbose)
            for definition in self.registry.definitions()
            if definition.tracks_changes
        ]

    async def enqueue(
        self,
        index_name: str,
        target: SegmentKind,
        reason: TriggerReason = TriggerReason.MANUAL,
    ) -> tuple[IndexJobModel, bool]:
        """
        Queue a build job for the worker.

        Returns:
            tuple: (job, created) where created is False when coalesced

        Raises:
            IndexConfigurationError: Index is disabled, or a delta job was
                requested for a none-strategy index
            IndexNotFoundError: Unknown index
        """
        definition = self.registry.get(index_name)
        if target == SegmentKind.DELTA and not definition.tracks_changes:
            raise IndexConfigurationError(
                "Index uses the none strategy and has no delta segment",
                index_name=index_name,
            )
        async with self.session_factory() as session:
            job, created = await index_job_crud.enqueue(session, index_name, target, reason)
            await session.commit()
        logger.info(
            f"{__name__}:enqueue - Build job {'queued' if created else 'coalesced'}",
            extra={"job_id": str(job.id), "index_name": index_name, "target": target.value},
        )
        return job, created

    def _page(self, limit: int | None, offset: int) -> tuple[int, int]:
        limit = self.default_limit if limit is None else limit
        return max(1, min(limit, self.max_limit)), max(0, offset)

    async def search(
        self,
        index_name: str,
        query: str = "",
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> SearchResults:
        """Search the merged core+delta view of an index."""
        limit, offset = self._page(limit, offset)
        return await asyncio.to_thread(
            self.merger.search, index_name, query, filters, limit, offset
        )

    async def search_records(
        self,
        session: AsyncSession,
        index_name: str,
        query: str = "",
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[tuple[Any, SearchHit]]:
        """
        Search and load the matching ORM records in rank order.

        Hits whose record no longer exists are skipped.

        Returns:
            list: (record, hit) pairs
        """
        definition = self.registry.get(index_name)
        results = await self.search(index_name, query, filters, limit, offset)
        if not results.hits:
            return []
        by_id = {hit.id: hit for hit in results.hits}
        model = definition.model
        ids = coerce_ids(model, by_id)
        stmt = select(model).options(*definition.load_options).where(model.id.in_(ids))
        records = {str(r.id): r for r in (await session.execute(stmt)).scalars().all()}
        return [(records[hit.id], hit) for hit in results.hits if hit.id in records]

    async def status(self, index_name: str) -> IndexStatus:
        """
        Describe an index: segments, dirty backlog and job counts.

        Disabled indexes report their configuration error instead of raising.

        Raises:
            IndexNotFoundError: Unknown index
        """
        errors = self.registry.errors()
        if index_name in errors:
            error = errors[index_name]
            return IndexStatus(
                name=index_name,
                model="",
                strategy="",
                enabled=False,
                error=error.message,
            )

        definition = self.registry.get(index_name)
        status = IndexStatus(
            name=definition.name,
            model=definition.model.__name__,
            strategy=definition.strategy.value,
            enabled=True,
            threshold_seconds=(
                definition.threshold.total_seconds() if definition.threshold else None
            ),
        )
        for kind in SegmentKind:
            try:
                info = self.store.info(index_name, kind)
            except SegmentUnavailableError as e:
                status.segment_errors[kind.value] = str(e.details.get("reason"))
                continue
            setattr(status, kind.value, info)

        async with self.session_factory() as session:
            if definition.tracks_changes:
                status.dirty_records = await indexed_record_crud.count_dirty(
                    session, definition.model
                )
            counts = await index_job_crud.count_by_status(session, index_name)
        status.jobs = {job_status.value: counts[job_status] for job_status in JobStatus}
        return status

    async def statuses(self) -> list[IndexStatus]:
        """Status of every enabled and disabled index, ordered by name."""
        names = sorted(set(self.registry.names()) | set(self.registry.errors()))
        return [await self.status(name) for name in names]

    def worker(
        self,
        worker_id: str | None = None,
        poll_interval: float = 1.0,
        stale_after: timedelta = timedelta(minutes=15),
        max_attempts: int = 3,
        verbose: bool | None = None,
    ) -> DeltaWorker:
        """Create a job worker sharing this service's builders."""
        return DeltaWorker(
            self.session_factory,
            self.delta_builder,
            self.core_rebuilder,
            worker_id=worker_id,
            poll_interval=poll_interval,
            stale_after=stale_after,
            max_attempts=max_attempts,
            options=self.options(verbose),
            clock=self.clock,
        )

    def poller(self, interval: float | None = None, verbose: bool | None = None) -> ThresholdPoller:
        """Create a threshold poller sharing this service's delta builder."""
        return ThresholdPoller(
            self.delta_builder,
            self.registry,
            interval=interval,
            options=self.options(verbose),
        )
