"""
File-backed segment store.

Persists one JSON file per (index, kind) under the configured index
directory. Replacement is atomic (temp file + rename), so readers either see
the previous segment or the new one, never a partial write. Loaded segments
are cached by file identity.

Dependencies: pydantic, deltasearch.boundary.search.segment
System role: Search index storage (core + delta segments)
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from deltasearch.boundary.search.segment import (
    SEGMENT_SCHEMA_VERSION,
    Segment,
    SegmentKind,
)
from deltasearch.core.exceptions import SegmentUnavailableError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SegmentInfo:
    """Lightweight description of a persisted segment."""

    index_name: str
    kind: SegmentKind
    document_count: int
    deleted_count: int
    built_at: datetime
    snapshot_at: datetime
    size_bytes: int


class SegmentStore:
    """
    Stores and serves immutable segments.

    Writers must hold writer_lock(index_name, kind) while building and
    replacing a segment. Readers never lock.
    """

    def __init__(self, index_dir: Path | str) -> None:
        """
        Initialize segment store.

        Args:
            index_dir: Root directory for segment files (created on demand)
        """
        self._index_dir = Path(index_dir)
        self._locks: dict[tuple[str, SegmentKind], asyncio.Lock] = {}
        self._cache: dict[Path, tuple[tuple[int, int, int], Segment]] = {}

    @property
    def index_dir(self) -> Path:
        return self._index_dir

    def path_for(self, index_name: str, kind: SegmentKind) -> Path:
        """Return the segment file path for an index and kind."""
        return self._index_dir / index_name / f"{kind.value}.json"

    def writer_lock(self, index_name: str, kind: SegmentKind) -> asyncio.Lock:
        """Return the exclusive writer lock for one segment."""
        key = (index_name, kind)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def exists(self, index_name: str, kind: SegmentKind) -> bool:
        return self.path_for(index_name, kind).is_file()

    def load(self, index_name: str, kind: SegmentKind) -> Segment | None:
        """
        Load a segment, serving the cached copy while the file is unchanged.

        Args:
            index_name: Index name
            kind: Segment kind

        Returns:
            Segment | None: The segment, or None if it was never built

        Raises:
            SegmentUnavailableError: File exists but is unreadable, corrupt,
                or written with an unsupported schema version
        """
        path = self.path_for(index_name, kind)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        identity = (stat.st_mtime_ns, stat.st_size, stat.st_ino)

        cached = self._cache.get(path)
        if cached is not None and cached[0] == identity:
            return cached[1]

        try:
            raw = path.read_text(encoding="utf-8")
            segment = Segment.model_validate_json(raw)
        except (OSError, ValidationError, ValueError) as e:
            raise SegmentUnavailableError(
                index_name, kind.value, reason=f"{type(e).__name__}: {e}"
            ) from e

        if segment.schema_version != SEGMENT_SCHEMA_VERSION:
            raise SegmentUnavailableError(
                index_name,
                kind.value,
                reason=(
                    f"schema version {segment.schema_version}, "
                    f"expected {SEGMENT_SCHEMA_VERSION}"
                ),
            )
        if segment.index_name != index_name or segment.kind != kind:
            raise SegmentUnavailableError(
                index_name, kind.value, reason="segment header does not match its path"
            )

        self._cache[path] = (identity, segment)
        return segment

    def replace(self, segment: Segment) -> Path:
        """
        Atomically replace the persisted segment of the same index and kind.

        The previous file stays in place until the final rename, so a
        failure at any earlier point leaves it served unchanged.

        Args:
            segment: Fully built segment

        Returns:
            Path: Final segment path
        """
        path = self.path_for(segment.index_name, segment.kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                handle.write(segment.model_dump_json())
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.debug(
            f"{__name__}:replace - Segment replaced",
            extra={
                "index_name": segment.index_name,
                "kind": segment.kind.value,
                "documents": len(segment.documents),
            },
        )
        return path

    def info(self, index_name: str, kind: SegmentKind) -> SegmentInfo | None:
        """
        Describe a persisted segment.

        Returns:
            SegmentInfo | None: None when the segment was never built

        Raises:
            SegmentUnavailableError: Segment file is unreadable
        """
        segment = self.load(index_name, kind)
        if segment is None:
            return None
        return SegmentInfo(
            index_name=index_name,
            kind=kind,
            document_count=len(segment.documents),
            deleted_count=len(segment.deleted_ids),
            built_at=segment.built_at,
            snapshot_at=segment.snapshot_at,
            size_bytes=self.path_for(index_name, kind).stat().st_size,
        )
