"""Index domain services."""

from searchsync.domain.index.service.coverage import CoverageTracker
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.reindex import ReindexCoordinator, run_partitions
from searchsync.domain.index.service.search import SearchService

__all__ = [
    "CoverageTracker",
    "ReindexCoordinator",
    "ReindexLockService",
    "SearchIndexer",
    "SearchService",
    "run_partitions",
]
