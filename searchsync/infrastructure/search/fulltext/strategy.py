"""Full-text search strategy backed by Meilisearch."""

import logging
import re
from typing import Any

import httpx
from meilisearch_python_sdk import AsyncClient
from meilisearch_python_sdk.errors import MeilisearchError

from searchsync.domain.index.model.record import IndexableRecord
from searchsync.infrastructure.search.fulltext.config import MeilisearchConfig

logger = logging.getLogger(__name__)

# Meilisearch document ids and index uids allow only [A-Za-z0-9_-]
_UNSAFE = re.compile(r"[^A-Za-z0-9-]")


def _escape(match: re.Match[str]) -> str:
    return "".join(f"_{byte:02x}" for byte in match.group().encode())


def safe_id(value: str) -> str:
    """Escape bytes outside [A-Za-z0-9-], underscore included, as `_` plus two hex digits.

    Distinct inputs give distinct ids, and an escaped value never contains `__`
    or ends in `_`, so `document_id` can use `__` as its separator.
    """
    return _UNSAFE.sub(_escape, value)


def document_id(entity_id: str, record_id: str) -> str:
    return f"{safe_id(entity_id)}__{safe_id(record_id)}"


class MeilisearchStrategy:
    """One Meilisearch index per tenant.

    Meilisearch applies document writes through its task queue; a returned
    task means the write was accepted, not that it has been applied. A
    missing index or document surfaces as a failed task, not an error here.
    """

    id = "fulltext"

    def __init__(self, config: MeilisearchConfig, client: AsyncClient) -> None:
        self._config = config
        self._client = client

    def index_uid(self, tenant_id: str) -> str:
        return f"{self._config.index_prefix}_{safe_id(tenant_id)}"

    async def is_available(self) -> bool:
        try:
            health = await self._client.health()
        except (MeilisearchError, httpx.HTTPError) as e:
            logger.warning("Meilisearch unavailable at %s: %s", self._config.url, e)
            return False
        return health.status == "available"

    async def recreate_index(self, tenant_id: str) -> None:
        uid = self.index_uid(tenant_id)

        await self._client.delete_index_if_exists(uid)
        index = await self._client.create_index(uid, primary_key="id")
        task = await index.update_filterable_attributes(self._config.filterable_attributes)
        await self._client.wait_for_task(task.task_uid)
        logger.info("Recreated fulltext index %s", uid)

    async def index(self, record: IndexableRecord) -> None:
        await self._add_documents(record.tenant_id, [to_document(record)])

    async def bulk_index(self, records: list[IndexableRecord]) -> None:
        by_tenant: dict[str, list[dict[str, Any]]] = {}
        for record in records:
            by_tenant.setdefault(record.tenant_id, []).append(to_document(record))
        for tenant_id, documents in by_tenant.items():
            await self._add_documents(tenant_id, documents)

    async def delete(self, entity_id: str, record_id: str, tenant_id: str) -> None:
        index = self._client.index(self.index_uid(tenant_id))
        await index.delete_document(document_id(entity_id, record_id))

    async def purge(self, entity_id: str, tenant_id: str) -> None:
        uid = self.index_uid(tenant_id)
        escaped = entity_id.replace("\\", "\\\\").replace("'", "\\'")
        await self._client.index(uid).delete_documents_by_filter(f"entity_id = '{escaped}'")
        logger.info("Purged fulltext documents for %s in %s", entity_id, uid)

    async def _add_documents(self, tenant_id: str, documents: list[dict[str, Any]]) -> None:
        if not documents:
            return
        uid = self.index_uid(tenant_id)
        await self._client.index(uid).add_documents(documents, primary_key="id")
        logger.debug("Sent %d documents to %s", len(documents), uid)


def to_document(record: IndexableRecord) -> dict[str, Any]:
    """Flatten an IndexableRecord into a Meilisearch document."""
    document: dict[str, Any] = {
        "id": document_id(record.entity_id, record.record_id),
        "entity_id": record.entity_id,
        "record_id": record.record_id,
        "organization_id": record.organization_id,
        "fields": record.model_dump(mode="json", include={"fields"})["fields"],
    }
    if record.text is not None:
        document["text"] = record.text
    if record.presenter is not None:
        document["presenter"] = record.presenter.model_dump(exclude_none=True)
    if record.url is not None:
        document["url"] = record.url
    if record.links:
        document["links"] = [link.model_dump(exclude_none=True) for link in record.links]
    return document


def create_client(config: MeilisearchConfig) -> AsyncClient:
    return AsyncClient(config.url, config.api_key, timeout=config.timeout)
