"""Vector search strategy using ChromaDB and sentence-transformers."""

import asyncio
import logging
from typing import Any

import chromadb
from sentence_transformers import SentenceTransformer

from searchsync.domain.index.model.record import IndexableRecord
from searchsync.infrastructure.search.vector.config import VectorConfig

logger = logging.getLogger(__name__)


class ChromaVectorStrategy:
    """Vector strategy backed by one ChromaDB collection shared by all tenants.

    Entries are keyed "{tenant}:{entity}:{record}" and carry tenant, entity,
    and organization metadata for filtering. All blocking work (embedding,
    ChromaDB I/O) runs in a thread pool.
    """

    id = "vector"

    def __init__(self, config: VectorConfig) -> None:
        if config.persist_dir is None:
            raise ValueError("VectorConfig.persist_dir must be set")

        self._config = config
        self._model = SentenceTransformer(config.model.value, device=config.device)

        persist_dir = config.persist_dir.expanduser()
        persist_dir.mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(path=str(persist_dir))
        self._collection = self._client.get_or_create_collection(
            name=config.collection,
            metadata={"hnsw:space": "cosine"},
        )

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(self._collection.count)
            return True
        except Exception as e:
            logger.warning("Vector store unavailable: %s", e)
            return False

    async def index(self, record: IndexableRecord) -> None:
        await self.bulk_index([record])

    async def bulk_index(self, records: list[IndexableRecord]) -> None:
        if not records:
            return

        ids = [entry_id(r.tenant_id, r.entity_id, r.record_id) for r in records]
        texts = [r.text_content() for r in records]
        metadatas = [self._metadata(r) for r in records]

        # Embed the whole batch at once
        embeddings = await asyncio.to_thread(lambda: self._model.encode(texts).tolist())
        await asyncio.to_thread(
            self._collection.upsert,
            ids=ids,
            embeddings=embeddings,
            metadatas=metadatas,
            documents=texts,
        )
        logger.debug("Upserted %d vectors into '%s'", len(records), self._config.collection)

    async def delete(self, entity_id: str, record_id: str, tenant_id: str) -> None:
        await asyncio.to_thread(
            self._collection.delete, ids=[entry_id(tenant_id, entity_id, record_id)]
        )

    async def purge(self, entity_id: str, tenant_id: str) -> None:
        await asyncio.to_thread(
            self._collection.delete,
            where={"$and": [{"tenant_id": tenant_id}, {"entity_id": entity_id}]},
        )
        logger.info("Purged vectors for %s in tenant %s", entity_id, tenant_id)

    async def list_entries(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        conditions: list[dict[str, Any]] = [{"tenant_id": tenant_id}]
        if organization_id is not None:
            # Tenant-wide vectors are stored with an empty organization
            conditions.append({"organization_id": {"$in": [organization_id, ""]}})
        if entity_id is not None:
            conditions.append({"entity_id": entity_id})
        where = conditions[0] if len(conditions) == 1 else {"$and": conditions}

        results = await asyncio.to_thread(
            self._collection.get,
            where=where,
            limit=limit,
            offset=offset,
            include=["metadatas", "documents"],
        )
        ids = results.get("ids") or []
        metadatas = results.get("metadatas") or []
        documents = results.get("documents") or []
        return [
            {
                "id": id_,
                "metadata": dict(metadatas[i]) if i < len(metadatas) else {},
                "document": documents[i] if i < len(documents) else None,
            }
            for i, id_ in enumerate(ids)
        ]

    @staticmethod
    def _metadata(record: IndexableRecord) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "tenant_id": record.tenant_id,
            "entity_id": record.entity_id,
            "record_id": record.record_id,
            # ChromaDB metadata cannot hold None
            "organization_id": record.organization_id or "",
        }
        if record.url:
            meta["url"] = record.url
        if record.presenter is not None:
            meta["title"] = record.presenter.title
            if record.presenter.subtitle:
                meta["subtitle"] = record.presenter.subtitle
        return meta


def entry_id(tenant_id: str, entity_id: str, record_id: str) -> str:
    return f"{tenant_id}:{entity_id}:{record_id}"
