"""Full-text reindex routes."""

import logging
from typing import Literal

from dishka.integrations.fastapi import DishkaRoute, FromDishka
from fastapi import APIRouter, Query
from pydantic import BaseModel

from searchsync.application.api.v1.context import OrganizationId, TenantId
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.model.result import ReindexResult
from searchsync.domain.index.port.search import FullTextStrategy
from searchsync.domain.index.service.indexer import FULLTEXT, SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.reindex import ReindexCoordinator, SweepProgress
from searchsync.domain.shared.error import ConfigurationError, NotFoundError
from searchsync.domain.shared.queue import JobQueues

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/search",
    tags=["search"],
    route_class=DishkaRoute,
)


class ReindexRequest(BaseModel):
    action: Literal["clear", "recreate", "reindex"] = "reindex"
    entity_id: str | None = None
    use_queue: bool = True


class ReindexResponse(BaseModel):
    ok: bool
    action: str
    entity_id: str | None
    queued: bool
    result: ReindexResult


class CancelResponse(BaseModel):
    ok: bool = True
    jobs_removed: int


class LockStatusResponse(BaseModel):
    type: str
    locked: bool
    lock: dict | None = None
    queue: dict[str, int] | None = None


@router.post("/reindex")
async def reindex_fulltext(
    body: ReindexRequest,
    tenant_id: TenantId,
    organization_id: OrganizationId,
    indexer: FromDishka[SearchIndexer],
    coordinator: FromDishka[ReindexCoordinator],
) -> ReindexResponse:
    """Clear, recreate, or rebuild the tenant's full-text index."""
    entity_id = body.entity_id
    if entity_id is not None and not indexer.is_entity_enabled(entity_id):
        raise NotFoundError(f"Entity '{entity_id}' is not configured for search")

    fulltext = indexer.search_service.get_strategy(FULLTEXT)
    if not isinstance(fulltext, FullTextStrategy):
        raise ConfigurationError("No full-text search strategy is configured")

    async def clear() -> ReindexResult:
        entities = [entity_id] if entity_id else indexer.list_enabled_entities()
        for entity in entities:
            await indexer.purge_entity(
                entity, tenant_id, organization_id, strategies=(FULLTEXT,)
            )
        return ReindexResult(entities_processed=len(entities))

    async def recreate() -> ReindexResult:
        await fulltext.recreate_index(tenant_id)
        return ReindexResult()

    progress = SweepProgress()

    async def reindex() -> ReindexResult:
        if entity_id:
            return await indexer.reindex_entity_to_fulltext(
                entity_id,
                tenant_id,
                organization_id,
                use_queue=body.use_queue,
                on_progress=progress.callback(),
            )
        return await indexer.reindex_all_to_fulltext(
            tenant_id, organization_id, use_queue=body.use_queue, on_progress=progress.callback()
        )

    sweeps = {"clear": clear, "recreate": recreate, "reindex": reindex}
    queued = body.action == "reindex" and body.use_queue

    result = await coordinator.run_exclusive(
        SearchBackend.FULLTEXT,
        body.action,
        tenant_id,
        organization_id,
        sweeps[body.action],
        queued=queued,
        progress=progress,
    )
    logger.info(
        "Fulltext %s for tenant %s (%s): %d indexed, %d jobs, %d errors",
        body.action,
        tenant_id,
        entity_id or "all",
        result.records_indexed,
        result.jobs_enqueued,
        len(result.errors),
    )
    return ReindexResponse(
        ok=result.success,
        action=body.action,
        entity_id=entity_id,
        queued=queued,
        result=result,
    )


@router.post("/reindex/cancel")
async def cancel_fulltext_reindex(
    tenant_id: TenantId,
    coordinator: FromDishka[ReindexCoordinator],
) -> CancelResponse:
    """Drop queued full-text jobs and release the lock."""
    removed = await coordinator.cancel(SearchBackend.FULLTEXT, tenant_id)
    return CancelResponse(jobs_removed=removed)


@router.get("/reindex/status")
async def reindex_status(
    tenant_id: TenantId,
    locks: FromDishka[ReindexLockService],
    coordinator: FromDishka[ReindexCoordinator],
    queues: FromDishka[JobQueues],
    type: SearchBackend | None = Query(None, description="Lock type; both when omitted"),
) -> list[LockStatusResponse]:
    """Live lock and queue depth per backend."""
    backends = [type] if type is not None else list(SearchBackend)
    statuses: list[LockStatusResponse] = []
    for backend in backends:
        status = await locks.get_status(backend, tenant_id)
        queue = queues.get(coordinator.queue_name(backend))
        counts = await queue.counts() if queue is not None else None
        statuses.append(
            LockStatusResponse(
                type=backend.value,
                locked=status is not None,
                lock=status.to_payload() if status is not None else None,
                queue=(
                    {
                        "pending": counts.pending,
                        "claimed": counts.claimed,
                        "completed": counts.completed,
                        "failed": counts.failed,
                    }
                    if counts is not None
                    else None
                ),
            )
        )
    return statuses
