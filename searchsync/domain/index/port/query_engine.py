"""Paging query port and its hook-only no-reindex decorator."""

import zlib
from dataclasses import dataclass, field, replace
from typing import Any, Protocol


@dataclass(frozen=True)
class Page:
    page: int = 1
    page_size: int = 200


@dataclass(frozen=True)
class Partition:
    """Shard `index` of `count`: records whose partition key % count == index."""

    count: int
    index: int

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError("partition count must be >= 1")
        if not 0 <= self.index < self.count:
            raise ValueError(f"partition index must be in [0, {self.count})")


def partition_key_for(record_id: str) -> int:
    """Stable non-negative hash of a record id, used as the sharding key."""
    return zlib.crc32(record_id.encode("utf-8"))


@dataclass(frozen=True)
class QueryOptions:
    tenant_id: str
    organization_id: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    page: Page = field(default_factory=Page)
    include_custom_fields: bool = False
    skip_auto_reindex: bool = False
    partition: Partition | None = None


@dataclass(frozen=True)
class QueryResult:
    items: list[dict[str, Any]]
    total: int


class QueryEngine(Protocol):
    """Paginated fetch of domain records for one entity.

    Implementations that schedule reindexing on their own must honour
    `skip_auto_reindex`.
    """

    async def query(self, entity_id: str, options: QueryOptions) -> QueryResult: ...


class NoReindexQueryEngine:
    """Wraps a QueryEngine so every query skips automatic reindex triggers.

    Handed to indexing hooks only, so a hook's own lookups cannot schedule
    more indexing.
    """

    def __init__(self, inner: QueryEngine) -> None:
        self._inner = inner

    @property
    def inner(self) -> QueryEngine:
        return self._inner

    async def query(self, entity_id: str, options: QueryOptions) -> QueryResult:
        return await self._inner.query(entity_id, replace(options, skip_auto_reindex=True))
