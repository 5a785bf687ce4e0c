"""Health and discovery routes."""

from dishka.integrations.fastapi import DishkaRoute, FromDishka
from fastapi import APIRouter
from pydantic import BaseModel

from searchsync.config import Config
from searchsync.domain.index.model.entity_config import EntityConfigRegistry
from searchsync.domain.index.service.search import SearchService

router = APIRouter(
    prefix="/search",
    tags=["search"],
    route_class=DishkaRoute,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    strategies: dict[str, bool]


@router.get("/health")
async def health(
    search_service: FromDishka[SearchService],
    config: FromDishka[Config],
) -> HealthResponse:
    """Liveness plus per-strategy availability."""
    strategies = {
        strategy.id: await strategy.is_available()
        for strategy in search_service.get_strategies()
    }
    status = "ok" if all(strategies.values()) else "degraded"
    return HealthResponse(status=status, version=config.server.version, strategies=strategies)


@router.get("/entities")
async def list_entities(registry: FromDishka[EntityConfigRegistry]) -> dict[str, list[str]]:
    """Entity ids enabled for search."""
    return {"entities": registry.list_enabled()}
