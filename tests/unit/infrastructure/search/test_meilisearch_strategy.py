"""Unit tests for MeilisearchStrategy against a mocked SDK client."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from meilisearch_python_sdk.errors import MeilisearchCommunicationError

from searchsync.domain.index.model.record import (
    IndexableRecord,
    SearchResultLink,
    SearchResultPresenter,
)
from searchsync.infrastructure.search.fulltext.config import MeilisearchConfig
from searchsync.infrastructure.search.fulltext.strategy import (
    MeilisearchStrategy,
    document_id,
    safe_id,
    to_document,
)


class FakeMeilisearch:
    """Stands in for the SDK AsyncClient; records one AsyncMock index per uid."""

    def __init__(self) -> None:
        self.indexes: dict[str, MagicMock] = {}
        self.health = AsyncMock(return_value=MagicMock(status="available"))
        self.delete_index_if_exists = AsyncMock(return_value=True)
        self.create_index = AsyncMock(side_effect=self._create)
        self.wait_for_task = AsyncMock()

    def index(self, uid: str) -> MagicMock:
        if uid not in self.indexes:
            index = MagicMock()
            index.add_documents = AsyncMock()
            index.delete_document = AsyncMock()
            index.delete_documents_by_filter = AsyncMock()
            index.update_filterable_attributes = AsyncMock(return_value=MagicMock(task_uid=7))
            self.indexes[uid] = index
        return self.indexes[uid]

    async def _create(self, uid: str, primary_key: str | None = None) -> MagicMock:
        return self.index(uid)


@pytest.fixture
def client() -> FakeMeilisearch:
    return FakeMeilisearch()


@pytest.fixture
def strategy(client: FakeMeilisearch) -> MeilisearchStrategy:
    config = MeilisearchConfig(url="http://meili.test", index_prefix="idx")
    return MeilisearchStrategy(config, client)  # type: ignore[arg-type]


def _record(record_id: str = "r-1", tenant_id: str = "acme", **kwargs) -> IndexableRecord:
    return IndexableRecord(
        entity_id="dataset", record_id=record_id, tenant_id=tenant_id, **kwargs
    )


class TestIds:
    def test_safe_id_escapes_unsupported_characters(self):
        assert safe_id("acme.corp/eu") == "acme_2ecorp_2feu"
        assert safe_id("ok_id-1") == "ok_5fid-1"
        assert safe_id("r-1") == "r-1"
        assert safe_id("é") == "_c3_a9"

    def test_document_id_joins_entity_and_record(self):
        assert document_id("data set", "r:1") == "data_20set__r_3a1"

    def test_lookalike_ids_stay_distinct(self):
        assert document_id("catalog:item", "a.b") != document_id("catalog:item", "a_b")
        assert document_id("a", "b__c") != document_id("a__b", "c")
        assert safe_id("a.b") != safe_id("a_2eb")

    def test_index_uid_per_tenant(self, strategy):
        assert strategy.index_uid("acme.io") == "idx_acme_2eio"
        assert strategy.index_uid("acme_io") != strategy.index_uid("acme.io")


class TestToDocument:
    def test_minimal_record(self):
        document = to_document(_record(fields={"title": "Soil"}))

        assert document == {
            "id": "dataset__r-1",
            "entity_id": "dataset",
            "record_id": "r-1",
            "organization_id": None,
            "fields": {"title": "Soil"},
        }

    def test_optional_parts_are_included(self):
        record = _record(
            text="soil samples",
            url="/datasets/r-1",
            presenter=SearchResultPresenter(title="Soil"),
            links=[SearchResultLink(href="/x", label="X")],
        )

        document = to_document(record)

        assert document["text"] == "soil samples"
        assert document["url"] == "/datasets/r-1"
        assert document["presenter"] == {"title": "Soil"}
        assert document["links"] == [{"href": "/x", "label": "X"}]


class TestAvailability:
    @pytest.mark.asyncio
    async def test_available(self, strategy):
        assert await strategy.is_available() is True

    @pytest.mark.asyncio
    async def test_unavailable_when_not_ready(self, strategy, client):
        client.health.return_value = MagicMock(status="unavailable")

        assert await strategy.is_available() is False

    @pytest.mark.asyncio
    async def test_unavailable_on_connection_error(self, strategy, client):
        client.health.side_effect = MeilisearchCommunicationError("refused")

        assert await strategy.is_available() is False

    @pytest.mark.asyncio
    async def test_unavailable_on_transport_error(self, strategy, client):
        client.health.side_effect = httpx.ReadTimeout("slow")

        assert await strategy.is_available() is False


class TestWrites:
    @pytest.mark.asyncio
    async def test_recreate_index(self, strategy, client):
        # Act
        await strategy.recreate_index("acme")

        # Assert
        client.delete_index_if_exists.assert_awaited_once_with("idx_acme")
        client.create_index.assert_awaited_once_with("idx_acme", primary_key="id")
        client.indexes["idx_acme"].update_filterable_attributes.assert_awaited_once_with(
            ["entity_id", "organization_id", "record_id"]
        )
        client.wait_for_task.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_recreate_index_propagates_errors(self, strategy, client):
        client.create_index.side_effect = MeilisearchCommunicationError("down")

        with pytest.raises(MeilisearchCommunicationError):
            await strategy.recreate_index("acme")

    @pytest.mark.asyncio
    async def test_index_sends_one_document(self, strategy, client):
        await strategy.index(_record(fields={"title": "Soil"}))

        (documents,), kwargs = client.indexes["idx_acme"].add_documents.await_args
        assert [d["id"] for d in documents] == ["dataset__r-1"]
        assert kwargs == {"primary_key": "id"}

    @pytest.mark.asyncio
    async def test_bulk_index_groups_documents_by_tenant(self, strategy, client):
        # Arrange
        records = [_record("a"), _record("b", tenant_id="globex"), _record("c")]

        # Act
        await strategy.bulk_index(records)

        # Assert
        assert sorted(client.indexes) == ["idx_acme", "idx_globex"]
        (sent,), _ = client.indexes["idx_acme"].add_documents.await_args
        assert [d["record_id"] for d in sent] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_bulk_index_empty_is_noop(self, strategy, client):
        await strategy.bulk_index([])

        assert client.indexes == {}

    @pytest.mark.asyncio
    async def test_delete_targets_document_id(self, strategy, client):
        await strategy.delete("dataset", "r-1", "acme")

        client.indexes["idx_acme"].delete_document.assert_awaited_once_with("dataset__r-1")

    @pytest.mark.asyncio
    async def test_purge_filters_on_escaped_entity(self, strategy, client):
        await strategy.purge("it's", "acme")

        client.indexes["idx_acme"].delete_documents_by_filter.assert_awaited_once_with(
            "entity_id = 'it\\'s'"
        )
