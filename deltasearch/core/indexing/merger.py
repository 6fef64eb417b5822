"""
Query-time merge of core and delta segments.

The merged view is the union of both segments where delta entries shadow
core entries, and core entries named on the delta kill-list disappear.
An unreadable segment degrades the result instead of failing the query.

Dependencies: deltasearch.boundary.search
System role: Search read path
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from deltasearch.boundary.search.bm25 import RankedCorpus
from deltasearch.boundary.search.segment import Segment, SegmentDocument, SegmentKind
from deltasearch.boundary.search.segment_store import SegmentStore
from deltasearch.core.exceptions import SegmentUnavailableError
from deltasearch.core.indexing.registry import IndexRegistry, index_registry

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SearchHit:
    """One ranked document and the segment it was served from."""

    id: str
    score: float
    source: SegmentKind
    document: SegmentDocument
    matched_terms: tuple[str, ...] = ()


@dataclass(slots=True)
class SearchResults:
    """A page of merged search results."""

    index_name: str
    query: str
    hits: list[SearchHit]
    total: int
    limit: int
    offset: int
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _MergedView:
    core: Segment | None
    delta: Segment | None
    documents: dict[str, tuple[SegmentDocument, SegmentKind]]
    corpus: RankedCorpus


def merge_segments(
    core: Segment | None,
    delta: Segment | None,
) -> dict[str, tuple[SegmentDocument, SegmentKind]]:
    """
    Union core and delta documents.

    For an id in both, the newer version wins and equal versions go to the
    delta. Core ids on the delta kill-list are dropped.
    """
    merged: dict[str, tuple[SegmentDocument, SegmentKind]] = {}
    if core is not None:
        for doc in core.documents:
            merged[doc.id] = (doc, SegmentKind.CORE)
    if delta is not None:
        for record_id in delta.deleted_ids:
            current = merged.get(record_id)
            if current is not None and current[1] == SegmentKind.CORE:
                del merged[record_id]
        for doc in delta.documents:
            current = merged.get(doc.id)
            if current is None or doc.version >= current[0].version:
                merged[doc.id] = (doc, SegmentKind.DELTA)
    return merged


def _same_value(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    # query strings arrive as text; compare booleans and numbers by text form
    if isinstance(actual, bool):
        return str(actual).lower() == str(expected).lower()
    return str(actual) == str(expected)


def matches_filters(document: SegmentDocument, filters: dict[str, Any] | None) -> bool:
    """Attribute equality filter; a list value matches any of its members."""
    if not filters:
        return True
    for name, expected in filters.items():
        if name not in document.attributes:
            return False
        actual = document.attributes[name]
        candidates = expected if isinstance(expected, (list, tuple, set, frozenset)) else [expected]
        values = actual if isinstance(actual, list) else [actual]
        if not any(_same_value(value, candidate) for value in values for candidate in candidates):
            return False
    return True


class IndexMerger:
    """
    Serves merged core+delta searches.

    Ranked corpora are cached per index and rebuilt only when the store
    hands out a different segment object, i.e. after a segment file changed.
    """

    def __init__(self, store: SegmentStore, registry: IndexRegistry | None = None) -> None:
        self.store = store
        self.registry = registry if registry is not None else index_registry
        self._views: dict[str, _MergedView] = {}

    def _load(self, index_name: str, kind: SegmentKind, warnings: list[str]) -> tuple[Segment | None, bool]:
        try:
            return self.store.load(index_name, kind), False
        except SegmentUnavailableError as e:
            warning = f"{kind.value} segment unavailable: {e.details.get('reason')}"
            warnings.append(warning)
            logger.warning(
                f"{__name__}:search - Serving degraded results",
                extra={"index_name": index_name, "kind": kind.value, "reason": e.details.get("reason")},
            )
            return None, True

    def _view(self, index_name: str, core: Segment | None, delta: Segment | None) -> _MergedView:
        view = self._views.get(index_name)
        if view is not None and view.core is core and view.delta is delta:
            return view
        documents = merge_segments(core, delta)
        weights: dict[str, float] = {}
        for segment in (core, delta):
            if segment is not None:
                weights.update(segment.field_weights)
        corpus = RankedCorpus.build(
            [(doc_id, documents[doc_id][0].fields) for doc_id in sorted(documents)],
            weights,
        )
        view = _MergedView(core=core, delta=delta, documents=documents, corpus=corpus)
        self._views[index_name] = view
        return view

    def search(
        self,
        index_name: str,
        query: str = "",
        filters: dict[str, Any] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResults:
        """
        Search the merged view of an index.

        Args:
            index_name: Registered index name
            query: Free text; empty returns every filtered document by id
            filters: Attribute equality filters
            limit: Page size
            offset: Page start

        Returns:
            SearchResults: Ranked page with degradation flag and warnings

        Raises:
            IndexConfigurationError: Index is disabled
            IndexNotFoundError: Unknown index
        """
        self.registry.get(index_name)
        warnings: list[str] = []
        core, core_failed = self._load(index_name, SegmentKind.CORE, warnings)
        delta, delta_failed = self._load(index_name, SegmentKind.DELTA, warnings)
        degraded = core_failed or delta_failed

        if core_failed and delta_failed:
            return SearchResults(
                index_name=index_name,
                query=query,
                hits=[],
                total=0,
                limit=limit,
                offset=offset,
                degraded=True,
                warnings=warnings,
            )

        view = self._view(index_name, core, delta)
        allowed = {
            doc_id for doc_id, (doc, _) in view.documents.items() if matches_filters(doc, filters)
        }

        if query.strip():
            ranked = [(hit.doc_id, hit.score, hit.matched_terms) for hit in view.corpus.search(query, allowed)]
        else:
            ranked = [(doc_id, 0.0, ()) for doc_id in sorted(allowed)]

        page = ranked[offset:offset + limit]
        hits = [
            SearchHit(
                id=doc_id,
                score=score,
                source=view.documents[doc_id][1],
                document=view.documents[doc_id][0],
                matched_terms=terms,
            )
            for doc_id, score, terms in page
        ]
        return SearchResults(
            index_name=index_name,
            query=query,
            hits=hits,
            total=len(ranked),
            limit=limit,
            offset=offset,
            degraded=degraded,
            warnings=warnings,
        )
