"""CoverageTracker - keeps per-scope backend counts truthful."""

import logging

from searchsync.domain.index.model.coverage import CoverageCounts, CoverageScope, CoverageSnapshot
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.port.coverage_repository import CoverageRepository
from searchsync.domain.shared.service import Service

logger = logging.getLogger(__name__)


class CoverageTracker(Service):
    repo: CoverageRepository

    async def write_coverage_counts(self, scope: CoverageScope, counts: CoverageCounts) -> None:
        """Idempotent upsert of the counts for one scope."""
        await self.repo.upsert(scope, counts)

    async def get(self, scope: CoverageScope) -> CoverageSnapshot | None:
        return await self.repo.get(scope)

    async def reset_after_purge(
        self,
        entity_type: str,
        tenant_id: str,
        organization_id: str | None = None,
        backends: tuple[SearchBackend, ...] = (SearchBackend.FULLTEXT, SearchBackend.VECTOR),
    ) -> int:
        """Zero the backend counts after a purge of entity/tenant.

        Covers every organization scope already tracked for the pair, plus
        the tenant-wide scope and `organization_id`. Returns scopes written.
        """
        organizations: list[str | None] = [None]
        if organization_id is not None:
            organizations.append(organization_id)
        for known in await self.repo.list_organizations(entity_type, tenant_id):
            if known not in organizations:
                organizations.append(known)

        counts = CoverageCounts.zero(backends)
        base = CoverageScope(entity_type=entity_type, tenant_id=tenant_id)
        for org in organizations:
            await self.repo.upsert(base.for_organization(org), counts)

        logger.debug(
            "Reset %s coverage for %s/%s across %d scopes",
            "/".join(backends),
            entity_type,
            tenant_id,
            len(organizations),
        )
        return len(organizations)
