"""Configuration for the Meilisearch full-text strategy."""

from pydantic import BaseModel


class MeilisearchConfig(BaseModel):
    url: str = "http://localhost:7700"
    api_key: str | None = None
    index_prefix: str = "search"  # Tenant indexes are named "{prefix}_{tenant}"
    timeout: int = 30  # Seconds
    filterable_attributes: list[str] = ["entity_id", "organization_id", "record_id"]
