"""Single-record index routes."""

from typing import Literal

from dishka.integrations.fastapi import DishkaRoute, FromDishka
from fastapi import APIRouter
from pydantic import BaseModel

from searchsync.application.api.v1.context import OrganizationId, TenantId
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.shared.error import NotFoundError

router = APIRouter(
    prefix="/search/records",
    tags=["search"],
    route_class=DishkaRoute,
)


class IndexRecordRequest(BaseModel):
    entity_id: str
    record_id: str
    strategies: list[str] | None = None  # All available strategies when unset


class IndexRecordResponse(BaseModel):
    action: Literal["indexed", "skipped"]
    reason: str | None = None


@router.post("/index")
async def index_record(
    body: IndexRecordRequest,
    tenant_id: TenantId,
    organization_id: OrganizationId,
    indexer: FromDishka[SearchIndexer],
) -> IndexRecordResponse:
    """Reload one record and push it to the search backends."""
    outcome = await indexer.index_record_by_id(
        body.entity_id,
        body.record_id,
        tenant_id,
        organization_id,
        strategies=body.strategies,
    )
    return IndexRecordResponse(action=outcome.action, reason=outcome.reason)


@router.delete("/{entity_id}/{record_id}", status_code=204)
async def delete_record(
    entity_id: str,
    record_id: str,
    tenant_id: TenantId,
    indexer: FromDishka[SearchIndexer],
) -> None:
    if not indexer.is_entity_enabled(entity_id):
        raise NotFoundError(f"Entity '{entity_id}' is not configured for search")
    await indexer.delete_record(entity_id, record_id, tenant_id)
