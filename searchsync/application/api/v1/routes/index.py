"""Vector index inspection and purge routes."""

import logging
from typing import Any

from dishka.integrations.fastapi import DishkaRoute, FromDishka
from fastapi import APIRouter, Query
from pydantic import BaseModel

from searchsync.application.api.v1.context import OrganizationId, TenantId
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.shared.error import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/search/index",
    tags=["search"],
    route_class=DishkaRoute,
)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


class IndexEntriesResponse(BaseModel):
    entries: list[dict[str, Any]]
    limit: int
    offset: int


class PurgeIndexResponse(BaseModel):
    ok: bool = True
    entity_ids: list[str]


def _limit(value: int | None) -> int:
    if value is None or value <= 0:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


@router.get("")
async def list_index_entries(
    tenant_id: TenantId,
    organization_id: OrganizationId,
    indexer: FromDishka[SearchIndexer],
    entity_id: str | None = Query(None),
    limit: int | None = Query(None),
    offset: int | None = Query(None),
) -> IndexEntriesResponse:
    """Page through the tenant's stored vectors."""
    limit = _limit(limit)
    offset = max(offset or 0, 0)
    entries = await indexer.list_vector_entries(
        tenant_id,
        organization_id=organization_id,
        entity_id=entity_id,
        limit=limit,
        offset=offset,
    )
    return IndexEntriesResponse(entries=entries, limit=limit, offset=offset)


@router.delete("")
async def purge_index(
    tenant_id: TenantId,
    organization_id: OrganizationId,
    indexer: FromDishka[SearchIndexer],
    entity_id: str | None = Query(None),
    confirm_all: bool = Query(False),
) -> PurgeIndexResponse:
    """Drop vectors for one entity, or for every enabled entity with `confirm_all`."""
    if entity_id is None and not confirm_all:
        raise ValidationError(
            "Purging all entities requires confirm_all=true", field="confirm_all"
        )
    if entity_id is not None and not indexer.is_entity_enabled(entity_id):
        raise NotFoundError(f"Entity '{entity_id}' is not configured for search")

    logger.info(
        "Vector purge requested for %s in tenant %s", entity_id or "all entities", tenant_id
    )
    purged = await indexer.purge_vector_index(tenant_id, organization_id, entity_id=entity_id)
    return PurgeIndexResponse(entity_ids=purged)
