"""
Search index boundary: segment schema, storage and ranking.

Exports:
  - Segment, SegmentDocument, SegmentKind: Segment schema
  - SegmentStore, SegmentInfo: Atomic file-backed storage
  - RankedCorpus, RankedHit, tokenize: BM25 ranking
"""

from deltasearch.boundary.search.bm25 import RankedCorpus, RankedHit, tokenize
from deltasearch.boundary.search.segment import (
    SEGMENT_SCHEMA_VERSION,
    Segment,
    SegmentDocument,
    SegmentKind,
)
from deltasearch.boundary.search.segment_store import SegmentInfo, SegmentStore

__all__ = [
    "SEGMENT_SCHEMA_VERSION",
    "RankedCorpus",
    "RankedHit",
    "Segment",
    "SegmentDocument",
    "SegmentInfo",
    "SegmentKind",
    "SegmentStore",
    "tokenize",
]
