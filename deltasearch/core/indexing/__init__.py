"""
Delta indexing core.

Index definitions and registry, dirty tracking, delta and core builds,
the query-time merger and the background scheduler.
"""

from deltasearch.core.indexing.core_rebuilder import CoreRebuilder
from deltasearch.core.indexing.definitions import (
    AttributeSpec,
    DeltaStrategy,
    DependencySpec,
    FieldSpec,
    IndexDefinition,
)
from deltasearch.core.indexing.delta_builder import DeltaBuilder
from deltasearch.core.indexing.dirty_tracking import DirtyTracker, touched_indexes
from deltasearch.core.indexing.merger import IndexMerger, SearchHit, SearchResults
from deltasearch.core.indexing.registry import IndexRegistry, index_registry, load_indexes_module
from deltasearch.core.indexing.reports import BuildOptions, BuildReport
from deltasearch.core.indexing.scheduler import DeltaWorker, ThresholdPoller

__all__ = [
    "AttributeSpec",
    "BuildOptions",
    "BuildReport",
    "CoreRebuilder",
    "DeltaBuilder",
    "DeltaStrategy",
    "DeltaWorker",
    "DependencySpec",
    "DirtyTracker",
    "FieldSpec",
    "IndexDefinition",
    "IndexMerger",
    "IndexRegistry",
    "SearchHit",
    "SearchResults",
    "ThresholdPoller",
    "index_registry",
    "load_indexes_module",
    "touched_indexes",
]
