"""Search strategy ports."""

from typing import Any, Protocol, runtime_checkable

from searchsync.domain.index.model.record import IndexableRecord


@runtime_checkable
class SearchStrategy(Protocol):
    """One pluggable search backend."""

    @property
    def id(self) -> str:
        """Strategy name ("fulltext", "vector")."""
        ...

    async def is_available(self) -> bool: ...

    async def index(self, record: IndexableRecord) -> None: ...

    async def bulk_index(self, records: list[IndexableRecord]) -> None: ...

    async def delete(self, entity_id: str, record_id: str, tenant_id: str) -> None: ...

    async def purge(self, entity_id: str, tenant_id: str) -> None: ...


@runtime_checkable
class FullTextStrategy(SearchStrategy, Protocol):
    async def recreate_index(self, tenant_id: str) -> None:
        """Drop and recreate the tenant's index."""
        ...


@runtime_checkable
class VectorStrategy(SearchStrategy, Protocol):
    async def list_entries(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...
