"""Tests for SQLAlchemyQueryEngine over the search_records table."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import insert

from searchsync.domain.index.port.query_engine import (
    Page,
    Partition,
    QueryOptions,
    partition_key_for,
)
from searchsync.infrastructure.persistence.repository.query_engine import SQLAlchemyQueryEngine
from searchsync.infrastructure.persistence.tables import search_records_table as records

TENANT = "acme"


async def _seed(session_factory, rows: list[dict]) -> None:
    now = datetime.now(UTC)
    values = [
        {
            "entity_id": "dataset",
            "tenant_id": TENANT,
            "organization_id": None,
            "custom_fields": None,
            "deleted_at": None,
            "created_at": now,
            "updated_at": now,
            "partition_key": partition_key_for(row["record_id"]),
            **row,
        }
        for row in rows
    ]
    async with session_factory.begin() as session:
        await session.execute(insert(records), values)


class TestQueryEngine:
    @pytest.mark.asyncio
    async def test_pages_in_record_id_order(self, session_factory):
        # Arrange
        await _seed(
            session_factory,
            [{"record_id": f"r-{i:02d}", "data": {"title": f"T{i}"}} for i in (3, 1, 4, 0, 2)],
        )

        # Act
        async with session_factory() as session:
            engine = SQLAlchemyQueryEngine(session)
            first = await engine.query(
                "dataset", QueryOptions(tenant_id=TENANT, page=Page(page=1, page_size=2))
            )
            third = await engine.query(
                "dataset", QueryOptions(tenant_id=TENANT, page=Page(page=3, page_size=2))
            )

        # Assert
        assert first.total == 5
        assert [item["id"] for item in first.items] == ["r-00", "r-01"]
        assert first.items[0]["title"] == "T0"
        assert [item["id"] for item in third.items] == ["r-04"]

    @pytest.mark.asyncio
    async def test_scoping_excludes_deleted_other_tenants_and_orgs(self, session_factory):
        # Arrange
        await _seed(
            session_factory,
            [
                {"record_id": "a", "data": {}, "organization_id": "org-1"},
                {"record_id": "b", "data": {}, "organization_id": "org-2"},
                {"record_id": "c", "data": {}, "organization_id": "org-1",
                 "deleted_at": datetime.now(UTC)},
                {"record_id": "d", "data": {}, "organization_id": "org-1", "tenant_id": "globex"},
                {"record_id": "e", "data": {}, "organization_id": "org-1", "entity_id": "sample"},
            ],
        )

        # Act
        async with session_factory() as session:
            result = await SQLAlchemyQueryEngine(session).query(
                "dataset", QueryOptions(tenant_id=TENANT, organization_id="org-1")
            )

        # Assert
        assert [item["id"] for item in result.items] == ["a"]
        assert result.items[0]["organization_id"] == "org-1"
        assert result.total == 1

    @pytest.mark.asyncio
    async def test_filters_by_id_and_data_field(self, session_factory):
        # Arrange
        await _seed(
            session_factory,
            [
                {"record_id": "a", "data": {"status": "published"}},
                {"record_id": "b", "data": {"status": "draft"}},
            ],
        )

        # Act
        async with session_factory() as session:
            engine = SQLAlchemyQueryEngine(session)
            by_id = await engine.query(
                "dataset", QueryOptions(tenant_id=TENANT, filters={"id": "b"})
            )
            by_field = await engine.query(
                "dataset", QueryOptions(tenant_id=TENANT, filters={"status": "published"})
            )

        # Assert
        assert [item["id"] for item in by_id.items] == ["b"]
        assert [item["id"] for item in by_field.items] == ["a"]

    @pytest.mark.asyncio
    async def test_custom_fields_only_when_requested(self, session_factory):
        # Arrange
        await _seed(
            session_factory,
            [{"record_id": "a", "data": {"title": "x"}, "custom_fields": {"region": "north"}}],
        )

        # Act
        async with session_factory() as session:
            engine = SQLAlchemyQueryEngine(session)
            plain = await engine.query("dataset", QueryOptions(tenant_id=TENANT))
            custom = await engine.query(
                "dataset", QueryOptions(tenant_id=TENANT, include_custom_fields=True)
            )

        # Assert
        assert "cf:region" not in plain.items[0]
        assert custom.items[0]["cf:region"] == "north"

    @pytest.mark.asyncio
    async def test_partitions_split_the_table(self, session_factory):
        # Arrange
        ids = [f"rec-{i:03d}" for i in range(40)]
        await _seed(session_factory, [{"record_id": r, "data": {}} for r in ids])

        # Act
        seen: list[str] = []
        async with session_factory() as session:
            engine = SQLAlchemyQueryEngine(session)
            for index in range(3):
                result = await engine.query(
                    "dataset",
                    QueryOptions(
                        tenant_id=TENANT,
                        page=Page(page=1, page_size=100),
                        partition=Partition(count=3, index=index),
                    ),
                )
                assert all(partition_key_for(i["id"]) % 3 == index for i in result.items)
                seen.extend(item["id"] for item in result.items)

        # Assert
        assert sorted(seen) == ids


class TestPartition:
    def test_partition_bounds(self):
        with pytest.raises(ValueError):
            Partition(count=0, index=0)
        with pytest.raises(ValueError):
            Partition(count=2, index=2)

    def test_partition_key_is_stable(self):
        assert partition_key_for("abc") == partition_key_for("abc")
        assert partition_key_for("abc") >= 0
