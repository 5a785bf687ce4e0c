"""CoverageRepository port."""

from typing import Protocol

from searchsync.domain.index.model.coverage import CoverageCounts, CoverageScope, CoverageSnapshot


class CoverageRepository(Protocol):
    async def upsert(self, scope: CoverageScope, counts: CoverageCounts) -> None:
        """Insert or update the row for the scope, touching only provided counts."""
        ...

    async def get(self, scope: CoverageScope) -> CoverageSnapshot | None: ...

    async def list_organizations(
        self, entity_type: str, tenant_id: str, with_deleted: bool = False
    ) -> list[str | None]:
        """Organization ids (None for tenant-wide) with a row for entity/tenant."""
        ...
