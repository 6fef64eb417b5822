"""
CRUD operations for database models.

Exports base CRUD class and model-specific CRUD implementations
with pre-instantiated singletons for direct use.

Usage:
    from deltasearch.boundary.db.CRUD import index_job_crud, indexed_record_crud

    job, created = await index_job_crud.enqueue(db, "articles", SegmentKind.DELTA, reason)
    dirty = await indexed_record_crud.select_dirty(db, Article)
"""

from deltasearch.boundary.db.CRUD.base_crud import BaseCRUD
from deltasearch.boundary.db.CRUD.job_crud import IndexJobCRUD, index_job_crud
from deltasearch.boundary.db.CRUD.record_crud import IndexedRecordCRUD, indexed_record_crud
from deltasearch.boundary.db.CRUD.tombstone_crud import (
    IndexTombstoneCRUD,
    index_tombstone_crud,
)

__all__ = [
    "BaseCRUD",
    "IndexJobCRUD",
    "index_job_crud",
    "IndexedRecordCRUD",
    "indexed_record_crud",
    "IndexTombstoneCRUD",
    "index_tombstone_crud",
]
