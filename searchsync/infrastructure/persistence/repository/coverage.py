"""SQLAlchemy adapter implementing CoverageRepository."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from searchsync.domain.index.model.coverage import CoverageCounts, CoverageScope, CoverageSnapshot
from searchsync.domain.index.port.coverage_repository import CoverageRepository
from searchsync.infrastructure.persistence.mappers import (
    as_utc,
    dialect_insert,
    from_scope_key,
    to_scope_key,
)
from searchsync.infrastructure.persistence.tables import search_coverage_table as coverage

_KEY_COLUMNS = ["entity_type", "tenant_id", "organization_scope", "with_deleted"]


class SQLAlchemyCoverageRepository(CoverageRepository):
    """Coverage rows upserted with ON CONFLICT DO UPDATE on the scope key."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, scope: CoverageScope, counts: CoverageCounts) -> None:
        provided = counts.provided()
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            "entity_type": scope.entity_type,
            "tenant_id": scope.tenant_id,
            "organization_scope": to_scope_key(scope.organization_id),
            "with_deleted": scope.with_deleted,
            "refreshed_at": now,
            **provided,
        }

        async with self._session_factory.begin() as session:
            insert = dialect_insert(session)
            stmt = insert(coverage).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=_KEY_COLUMNS,
                set_={"refreshed_at": now, **provided},
            )
            await session.execute(stmt)

    async def get(self, scope: CoverageScope) -> CoverageSnapshot | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(coverage).where(
                    coverage.c.entity_type == scope.entity_type,
                    coverage.c.tenant_id == scope.tenant_id,
                    coverage.c.organization_scope == to_scope_key(scope.organization_id),
                    coverage.c.with_deleted == scope.with_deleted,
                )
            )
            row = result.mappings().first()

        if row is None:
            return None
        return CoverageSnapshot(
            scope=scope,
            base_count=row["base_count"],
            fulltext_count=row["fulltext_count"],
            vector_count=row["vector_count"],
            refreshed_at=as_utc(row["refreshed_at"]),
        )

    async def list_organizations(
        self, entity_type: str, tenant_id: str, with_deleted: bool = False
    ) -> list[str | None]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(coverage.c.organization_scope)
                .where(
                    coverage.c.entity_type == entity_type,
                    coverage.c.tenant_id == tenant_id,
                    coverage.c.with_deleted == with_deleted,
                )
                .distinct()
            )
            return [from_scope_key(key) for key in result.scalars().all()]
