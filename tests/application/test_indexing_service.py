"""
Test suite for IndexingService.

End-to-end flows through real sessions, the dirty tracker, the builders,
the job queue and merged search, driven by a fake clock.

System role: Verification of indexing orchestration
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from deltasearch.application.services.indexing_service import IndexingService
from deltasearch.boundary.db.CRUD.job_crud import index_job_crud
from deltasearch.boundary.db.CRUD.record_crud import indexed_record_crud
from deltasearch.boundary.db.CRUD.tombstone_crud import index_tombstone_crud
from deltasearch.boundary.db.models.job_model import JobStatus, TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.core.exceptions import IndexConfigurationError, SegmentBuildError
from deltasearch.core.indexing.definitions import DeltaStrategy, IndexDefinition
from deltasearch.core.indexing.registry import IndexRegistry
from support import EPOCH, Article, Comment, FakeClock, PlainNote, article_index


async def add_articles(service: IndexingService, *titles: str, **values) -> list[Article]:
    """Insert articles in one transaction and commit through the service."""
    async with service.session_factory() as session:
        articles = [Article(title=title, **values) for title in titles]
        session.add_all(articles)
        await service.commit(session)
    return articles


async def edit_article(service: IndexingService, article: Article, **values) -> list:
    async with service.session_factory() as session:
        loaded = await session.get(Article, article.id)
        for key, value in values.items():
            setattr(loaded, key, value)
        return await service.commit(session)


async def hit_ids(service: IndexingService, query: str, **kwargs) -> list[str]:
    results = await service.search("articles", query, **kwargs)
    return [hit.id for hit in results.hits]


class TestSynchronousStrategy:
    """Test suite for inline delta builds on commit."""

    @pytest.mark.asyncio
    async def test_committed_record_should_be_searchable(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test a committed insert is visible to the next search."""
        # Arrange
        registry.register(article_index())

        # Act
        (article,) = await add_articles(service, "Delta indexing explained")
        results = await service.search("articles", "delta")

        # Assert
        assert [hit.id for hit in results.hits] == [str(article.id)]
        assert results.hits[0].source == SegmentKind.DELTA

    @pytest.mark.asyncio
    async def test_commit_should_return_build_reports(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test synchronous builds report what they indexed."""
        # Arrange
        registry.register(article_index())

        # Act
        async with service.session_factory() as session:
            session.add_all([Article(title="one"), Article(title="two")])
            reports = await service.commit(session)

        # Assert
        assert len(reports) == 1
        assert reports[0].kind == SegmentKind.DELTA
        assert reports[0].reason == TriggerReason.MUTATION
        assert reports[0].documents == 2

    @pytest.mark.asyncio
    async def test_failed_build_should_keep_previous_segment(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test a failing write leaves the old delta served and the record dirty."""
        # Arrange
        registry.register(article_index())
        (article,) = await add_articles(service, "original headline")
        clock.advance(10)

        # Act
        with patch.object(service.store, "replace", side_effect=OSError("disk full")):
            with pytest.raises(SegmentBuildError):
                await edit_article(service, article, title="rewritten headline")

        # Assert
        assert await hit_ids(service, "original") == [str(article.id)]
        assert await hit_ids(service, "rewritten") == []
        async with service.session_factory() as session:
            assert await indexed_record_crud.select_dirty_ids(session, Article) == {article.id}

        await service.build_delta("articles")
        assert await hit_ids(service, "rewritten") == [str(article.id)]


class TestCoreRebuild:
    """Test suite for core rebuilds."""

    @pytest.mark.asyncio
    async def test_rebuild_should_clear_only_records_unchanged_since_snapshot(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test a record versioned after the snapshot time stays dirty."""
        # Arrange
        registry.register(article_index())
        stable, moving = await add_articles(service, "stable", "moving")
        async with service.session_factory() as session:
            await session.execute(
                update(Article)
                .where(Article.id == moving.id)
                .values(title="moving again", updated_at=EPOCH + timedelta(seconds=60))
            )
            await session.commit()
        clock.advance(30)

        # Act
        report = await service.rebuild_core("articles")

        # Assert
        assert report.kind == SegmentKind.CORE
        assert report.documents == 2
        assert report.cleared == 1
        assert report.delta.documents == 1
        async with service.session_factory() as session:
            assert await indexed_record_crud.select_dirty_ids(session, Article) == {moving.id}
        results = await service.search("articles", "moving")
        assert {hit.id: hit.source for hit in results.hits} == {str(moving.id): SegmentKind.DELTA}
        assert (await service.search("articles", "stable")).hits[0].source == SegmentKind.CORE

    @pytest.mark.asyncio
    async def test_rebuild_should_keep_edit_committed_after_snapshot_read(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test an edit stamped before the snapshot time but committed after the read stays dirty."""
        # Arrange
        registry.register(article_index())
        (article,) = await add_articles(service, "old headline")
        snapshot_at = clock.advance(30)
        select_all = indexed_record_crud.select_all

        async def snapshot_then_edit(session, model, options=()):
            records = await select_all(session, model, options=options)
            clock.now = snapshot_at - timedelta(seconds=10)
            async with service.session_factory() as other:
                loaded = await other.get(Article, article.id)
                loaded.title = "new headline"
                await other.commit()
            clock.now = snapshot_at
            return records

        # Act
        with patch.object(indexed_record_crud, "select_all", new=snapshot_then_edit):
            report = await service.rebuild_core("articles")

        # Assert
        assert report.cleared == 0
        async with service.session_factory() as session:
            assert await indexed_record_crud.select_dirty_ids(session, Article) == {article.id}
        results = await service.search("articles", "new")
        assert {hit.id: hit.source for hit in results.hits} == {str(article.id): SegmentKind.DELTA}

    @pytest.mark.asyncio
    async def test_none_strategy_should_only_change_on_core_rebuild(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test core-only indexes ignore mutations until the next rebuild."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.NONE))

        # Act
        articles = await add_articles(service, "quiet")
        before = await hit_ids(service, "quiet")
        report = await service.rebuild_core("articles")
        after = await hit_ids(service, "quiet")

        # Assert
        assert before == []
        assert after == [str(articles[0].id)]
        assert report.delta is None
        assert not service.store.exists("articles", SegmentKind.DELTA)

    @pytest.mark.asyncio
    async def test_rebuild_all_should_cover_every_index(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test rebuild_all rebuilds each enabled index."""
        # Arrange
        registry.register(article_index())
        registry.register(article_index(name="archive", strategy=DeltaStrategy.NONE))

        # Act
        reports = await service.rebuild_all()

        # Assert
        assert [r.index_name for r in reports] == ["archive", "articles"]


class TestDeletion:
    """Test suite for deletions and the kill-list."""

    @pytest.mark.asyncio
    async def test_deleted_record_should_disappear_then_be_absorbed(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test the kill-list hides core entries until a core rebuild absorbs it."""
        # Arrange
        registry.register(article_index())
        doomed, kept = await add_articles(service, "shared topic", "shared topic too")
        await service.rebuild_core("articles")
        clock.advance(10)

        # Act
        async with service.session_factory() as session:
            await session.delete(await session.get(Article, doomed.id))
            reports = await service.commit(session)
        visible = await hit_ids(service, "shared")

        # Assert
        assert reports[0].deleted == 1
        assert visible == [str(kept.id)]

        clock.advance(10)
        core = await service.rebuild_core("articles")
        assert core.deleted == 1
        assert core.delta.deleted == 0
        assert await hit_ids(service, "shared") == [str(kept.id)]
        async with service.session_factory() as session:
            assert await index_tombstone_crud.get_for_index(session, "articles") == []


class TestDelayedStrategy:
    """Test suite for queued delta builds."""

    @pytest.mark.asyncio
    async def test_mutations_should_coalesce_into_one_job_and_build(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test N mutations queue one job that one worker pass turns into one build."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DELAYED))

        # Act
        for title in ("first queued", "second queued", "third queued"):
            await add_articles(service, title)
            clock.advance(1)
        async with service.session_factory() as session:
            queued = await index_job_crud.get_by_status(session, JobStatus.QUEUED)
        before = await hit_ids(service, "queued")
        processed = await service.worker(worker_id="test-worker").run_once()

        # Assert
        assert len(queued) == 1
        assert queued[0].reason == TriggerReason.MUTATION
        assert before == []
        assert processed == 1
        assert len(await hit_ids(service, "queued")) == 3
        async with service.session_factory() as session:
            completed = await index_job_crud.get_by_status(session, JobStatus.COMPLETED)
        assert completed[0].result["documents"] == 3

    @pytest.mark.asyncio
    async def test_worker_should_recover_orphaned_job(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test a job left running by a dead worker is requeued and completed."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DELAYED))
        await add_articles(service, "orphaned change")
        async with service.session_factory() as session:
            job = await index_job_crud.claim_next(session, "dead-worker", now=clock())
            await session.commit()
        clock.advance(timedelta(minutes=20).total_seconds())
        worker = service.worker(worker_id="test-worker")

        # Act
        recovered = await worker.recover()
        processed = await worker.run_once()

        # Assert
        assert recovered == (1, 0)
        assert processed == 1
        async with service.session_factory() as session:
            finished = await index_job_crud.get_by_id(session, job.id)
        assert finished.status == JobStatus.COMPLETED
        assert finished.attempts == 2
        assert finished.reason == TriggerReason.RECOVERY

    @pytest.mark.asyncio
    async def test_worker_should_mark_failing_job_failed(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test a build error fails the job and the worker keeps going."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DELAYED))
        async with service.session_factory() as session:
            ghost, _ = await index_job_crud.enqueue(
                session, "ghost", SegmentKind.DELTA, TriggerReason.MANUAL
            )
            await session.commit()
        await add_articles(service, "real change")

        # Act
        processed = await service.worker(worker_id="test-worker").run_once()

        # Assert
        assert processed == 2
        async with service.session_factory() as session:
            failed = await index_job_crud.get_by_id(session, ghost.id)
        assert failed.status == JobStatus.FAILED
        assert failed.result["error_type"] == "IndexNotFoundError"
        assert await hit_ids(service, "real") != []

    @pytest.mark.asyncio
    async def test_enqueue_should_coalesce_and_validate(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test manual enqueues coalesce and core-only indexes refuse delta jobs."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DELAYED))
        registry.register(article_index(name="archive", strategy=DeltaStrategy.NONE))

        # Act
        first, created = await service.enqueue("articles", SegmentKind.CORE)
        second, coalesced = await service.enqueue("articles", SegmentKind.CORE)

        # Assert
        assert created is True
        assert coalesced is False
        assert second.id == first.id
        with pytest.raises(IndexConfigurationError):
            await service.enqueue("archive", SegmentKind.DELTA)


class TestDatetimeStrategy:
    """Test suite for threshold-driven delta builds."""

    @pytest.mark.asyncio
    async def test_poller_should_build_once_threshold_has_passed(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test a change is invisible until its mark is threshold seconds old."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DATETIME, threshold=timedelta(seconds=60)))
        poller = service.poller()
        await add_articles(service, "settling change")

        # Act
        clock.advance(30)
        early = await poller.poll_once()
        early_hits = await hit_ids(service, "settling")
        clock.advance(30)
        on_time = await poller.poll_once()
        again = await poller.poll_once()

        # Assert
        assert early == []
        assert early_hits == []
        assert len(on_time) == 1
        assert on_time[0].reason == TriggerReason.THRESHOLD
        assert again == []
        assert len(await hit_ids(service, "settling")) == 1
        assert poller.effective_interval() == 60.0

    @pytest.mark.asyncio
    async def test_commit_should_not_build_datetime_index(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test commits leave datetime indexes to the poller."""
        # Arrange
        registry.register(article_index(strategy=DeltaStrategy.DATETIME, threshold=timedelta(seconds=5)))

        # Act
        async with service.session_factory() as session:
            session.add(Article(title="later"))
            reports = await service.commit(session)

        # Assert
        assert reports == []
        assert not service.store.exists("articles", SegmentKind.DELTA)


class TestDependencies:
    """Test suite for cross-entity dirtiness."""

    @pytest.mark.asyncio
    async def test_comment_should_reindex_owning_article(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test a new comment makes its article searchable by the comment text."""
        # Arrange
        registry.register(article_index(with_comments=True))
        (article,) = await add_articles(service, "plain article")
        await service.rebuild_core("articles")
        clock.advance(10)

        # Act
        async with service.session_factory() as session:
            session.add(Comment(article_id=article.id, body="wonderful insight"))
            reports = await service.commit(session)
        results = await service.search("articles", "wonderful")

        # Assert
        assert reports[0].documents == 1
        assert [hit.id for hit in results.hits] == [str(article.id)]
        assert results.hits[0].source == SegmentKind.DELTA

    @pytest.mark.asyncio
    async def test_mark_dirty_should_trigger_build_on_commit(
        self,
        service: IndexingService,
        registry: IndexRegistry,
        clock: FakeClock,
    ) -> None:
        """Test explicit marking goes through the same trigger policy."""
        # Arrange
        registry.register(article_index())
        (article,) = await add_articles(service, "explicit")
        await service.rebuild_core("articles")
        clock.advance(10)

        # Act
        async with service.session_factory() as session:
            touched = await service.mark_dirty(session, "articles", [str(article.id)])
            reports = await service.commit(session)

        # Assert
        assert touched == 1
        assert reports[0].documents == 1


class TestSearchAndStatus:
    """Test suite for search helpers and status reporting."""

    @pytest.mark.asyncio
    async def test_search_records_should_load_rows_in_rank_order(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test hits are paired with their ORM records."""
        # Arrange
        registry.register(article_index())
        weak, strong = await add_articles(service, "index once", "index index index")

        # Act
        async with service.session_factory() as session:
            pairs = await service.search_records(session, "articles", "index")

        # Assert
        assert [record.id for record, _ in pairs] == [strong.id, weak.id]
        assert pairs[0][1].id == str(strong.id)

    @pytest.mark.asyncio
    async def test_search_should_filter_and_clamp_limit(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test attribute filters and the page size bounds."""
        # Arrange
        registry.register(article_index())
        await add_articles(service, "draft one", status="draft")
        await add_articles(service, "live one", status="published")

        # Act
        results = await service.search("articles", "one", filters={"status": "draft"}, limit=10_000)

        # Assert
        assert [hit.document.fields["title"] for hit in results.hits] == ["draft one"]
        assert results.limit == service.max_limit

    @pytest.mark.asyncio
    async def test_status_should_report_segments_backlog_and_jobs(
        self,
        service: IndexingService,
        registry: IndexRegistry,
    ) -> None:
        """Test status covers enabled and disabled indexes."""
        # Arrange
        registry.register(article_index())
        registry.register(IndexDefinition(name="notes", model=PlainNote, fields=["text"]))
        await add_articles(service, "counted")

        # Act
        statuses = await service.statuses()

        # Assert
        articles, notes = statuses
        assert articles.enabled is True
        assert articles.strategy == "synchronous"
        assert articles.core is None
        assert articles.delta.document_count == 1
        assert articles.dirty_records == 1
        assert articles.jobs["queued"] == 0
        assert notes.enabled is False
        assert "missing columns" in notes.error
