"""Index domain models."""

from .coverage import CoverageCounts, CoverageScope, CoverageSnapshot
from .entity_config import EntityConfig, EntityConfigRegistry, SearchModuleConfig
from .lock import LockAcquisition, LockStatus, ReindexLock, SearchBackend
from .record import (
    IndexableRecord,
    IndexRecordParams,
    RecordRef,
    SearchBuildContext,
    SearchBuildSource,
    SearchResultLink,
    SearchResultPresenter,
)
from .result import IndexOutcome, ReindexPhase, ReindexProgress, ReindexResult

__all__ = [
    "CoverageCounts",
    "CoverageScope",
    "CoverageSnapshot",
    "EntityConfig",
    "EntityConfigRegistry",
    "IndexOutcome",
    "IndexRecordParams",
    "IndexableRecord",
    "LockAcquisition",
    "LockStatus",
    "RecordRef",
    "ReindexLock",
    "ReindexPhase",
    "ReindexProgress",
    "ReindexResult",
    "SearchBackend",
    "SearchBuildContext",
    "SearchBuildSource",
    "SearchModuleConfig",
    "SearchResultLink",
    "SearchResultPresenter",
]
