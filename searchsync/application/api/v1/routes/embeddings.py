"""Vector (embedding) reindex routes."""

import logging

from dishka.integrations.fastapi import DishkaRoute, FromDishka
from fastapi import APIRouter
from pydantic import BaseModel

from searchsync.application.api.v1.context import OrganizationId, TenantId
from searchsync.application.api.v1.routes.reindex import CancelResponse, ReindexResponse
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.model.result import ReindexResult
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.reindex import ReindexCoordinator
from searchsync.domain.shared.error import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/search/embeddings",
    tags=["search"],
    route_class=DishkaRoute,
)


class EmbeddingsReindexRequest(BaseModel):
    entity_id: str | None = None
    purge_first: bool = False


@router.post("/reindex")
async def reindex_embeddings(
    body: EmbeddingsReindexRequest,
    tenant_id: TenantId,
    organization_id: OrganizationId,
    indexer: FromDishka[SearchIndexer],
    coordinator: FromDishka[ReindexCoordinator],
) -> ReindexResponse:
    """Queue a vector rebuild; workers embed the records and heartbeat the lock."""
    entity_id = body.entity_id
    if entity_id is not None and not indexer.is_entity_enabled(entity_id):
        raise NotFoundError(f"Entity '{entity_id}' is not configured for search")

    async def sweep() -> ReindexResult:
        if entity_id:
            return await indexer.reindex_entity_to_vector(
                entity_id, tenant_id, organization_id, purge_first=body.purge_first
            )
        return await indexer.reindex_all_to_vector(
            tenant_id, organization_id, purge_first=body.purge_first
        )

    action = f"reindex:{entity_id or 'all'}"
    result = await coordinator.run_exclusive(
        SearchBackend.VECTOR, action, tenant_id, organization_id, sweep, queued=True
    )
    logger.info(
        "Vector %s for tenant %s: %d jobs (%d records), %d errors",
        action,
        tenant_id,
        result.jobs_enqueued,
        result.records_enqueued,
        len(result.errors),
    )
    return ReindexResponse(
        ok=result.success, action=action, entity_id=entity_id, queued=True, result=result
    )


@router.post("/reindex/cancel")
async def cancel_embeddings_reindex(
    tenant_id: TenantId,
    coordinator: FromDishka[ReindexCoordinator],
) -> CancelResponse:
    removed = await coordinator.cancel(SearchBackend.VECTOR, tenant_id)
    return CancelResponse(jobs_removed=removed)
