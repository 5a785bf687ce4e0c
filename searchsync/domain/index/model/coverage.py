"""Coverage counts: how many records of a scope each backend holds."""

from datetime import datetime

from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.shared.model.value import ValueObject


class CoverageScope(ValueObject):
    """(entity, tenant, organization-or-null) scope.

    organization_id=None is the tenant-wide scope.
    """

    entity_type: str
    tenant_id: str
    organization_id: str | None = None
    with_deleted: bool = False

    def for_organization(self, organization_id: str | None) -> "CoverageScope":
        return self.model_copy(update={"organization_id": organization_id})


class CoverageCounts(ValueObject):
    """Counts to write. Fields left as None are not touched by the upsert."""

    base_count: int | None = None
    fulltext_count: int | None = None
    vector_count: int | None = None

    @classmethod
    def zero(cls, backends: tuple[SearchBackend, ...]) -> "CoverageCounts":
        return cls(**{f"{backend.value}_count": 0 for backend in backends})

    def provided(self) -> dict[str, int]:
        return {key: value for key, value in self.model_dump().items() if value is not None}


class CoverageSnapshot(ValueObject):
    """A stored coverage row."""

    scope: CoverageScope
    base_count: int | None = None
    fulltext_count: int | None = None
    vector_count: int | None = None
    refreshed_at: datetime | None = None

    def indexed_count(self, backend: SearchBackend) -> int:
        value = getattr(self, f"{backend.value}_count")
        return value or 0
