"""Outcomes and progress reports of indexing operations."""

from collections.abc import Callable
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from searchsync.domain.shared.model.value import ValueObject


class ReindexPhase(StrEnum):
    STARTING = "starting"
    FETCHING = "fetching"
    INDEXING = "indexing"
    COMPLETE = "complete"


class ReindexProgress(ValueObject):
    entity_id: str
    phase: ReindexPhase
    processed: int
    total: int | None = None


ProgressCallback = Callable[[ReindexProgress], None]


class ReindexErrorEntry(ValueObject):
    entity_id: str
    error: str


class ReindexResult(BaseModel):
    """Aggregate outcome of a sweep. Returned even when parts of it failed."""

    success: bool = True
    entities_processed: int = 0
    records_indexed: int = 0
    records_dropped: int = 0
    records_enqueued: int = 0
    jobs_enqueued: int = 0
    errors: list[ReindexErrorEntry] = Field(default_factory=list)

    @classmethod
    def failure(cls, entity_id: str, error: str) -> "ReindexResult":
        """An unsuccessful result carrying exactly one error entry."""
        return cls(success=False, errors=[ReindexErrorEntry(entity_id=entity_id, error=error)])

    def add_error(self, entity_id: str, error: str) -> None:
        self.errors.append(ReindexErrorEntry(entity_id=entity_id, error=error))

    def merge(self, other: "ReindexResult") -> "ReindexResult":
        """Fold another result into this one and return self."""
        self.success = self.success and other.success
        self.entities_processed += other.entities_processed
        self.records_indexed += other.records_indexed
        self.records_dropped += other.records_dropped
        self.records_enqueued += other.records_enqueued
        self.jobs_enqueued += other.jobs_enqueued
        self.errors.extend(other.errors)
        return self


class IndexOutcome(ValueObject):
    """Answer of index_record_by_id for expected outcomes."""

    action: Literal["indexed", "skipped"]
    reason: str | None = None

    @classmethod
    def indexed(cls) -> "IndexOutcome":
        return cls(action="indexed")

    @classmethod
    def skipped(cls, reason: str) -> "IndexOutcome":
        return cls(action="skipped", reason=reason)
