"""Unit tests for the batch-index job handlers."""

from unittest.mock import AsyncMock

import pytest

from searchsync.domain.index.event.reindex_job import ReindexJob
from searchsync.domain.index.handler.batch_index import (
    FULLTEXT_QUEUE,
    VECTOR_QUEUE,
    FulltextBatchIndexHandler,
    VectorBatchIndexHandler,
)
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.model.record import RecordRef
from searchsync.domain.index.model.result import IndexOutcome

TENANT = "acme"


def _job(*record_ids: str) -> ReindexJob:
    return ReindexJob(
        tenant_id=TENANT,
        organization_id="org-1",
        records=[RecordRef(entity_id="dataset", record_id=r) for r in record_ids],
    )


class TestHandlerConfiguration:
    def test_job_type_comes_from_generic_parameter(self):
        assert FulltextBatchIndexHandler.__job_type__ is ReindexJob
        assert VectorBatchIndexHandler.__job_type__ is ReindexJob

    def test_queues_and_limits(self):
        assert FulltextBatchIndexHandler.__queue__ == FULLTEXT_QUEUE
        assert VectorBatchIndexHandler.__queue__ == VECTOR_QUEUE
        assert FulltextBatchIndexHandler.__batch_size__ == 5
        assert VectorBatchIndexHandler.__max_retries__ == 5

    def test_handlers_are_dataclasses_with_injected_fields(self):
        indexer, locks = AsyncMock(), AsyncMock()

        handler = VectorBatchIndexHandler(indexer=indexer, locks=locks)

        assert handler.indexer is indexer
        assert handler.locks is locks


class TestBatchIndexHandler:
    @pytest.mark.asyncio
    async def test_reloads_each_record_for_its_backend(self):
        # Arrange
        indexer = AsyncMock()
        indexer.index_record_by_id.return_value = IndexOutcome.indexed()
        locks = AsyncMock()
        handler = FulltextBatchIndexHandler(indexer=indexer, locks=locks)

        # Act
        await handler.handle(_job("a", "b"))

        # Assert
        assert indexer.index_record_by_id.await_count == 2
        indexer.index_record_by_id.assert_any_await(
            "dataset", "a", TENANT, "org-1", strategies=("fulltext",)
        )
        locks.heartbeat.assert_awaited_once_with(SearchBackend.FULLTEXT, TENANT, processed=2)

    @pytest.mark.asyncio
    async def test_skipped_records_count_as_processed(self):
        # Arrange
        indexer = AsyncMock()
        indexer.index_record_by_id.side_effect = [
            IndexOutcome.indexed(),
            IndexOutcome.skipped("record not found"),
        ]
        locks = AsyncMock()
        handler = VectorBatchIndexHandler(indexer=indexer, locks=locks)

        # Act
        await handler.handle(_job("a", "gone"))

        # Assert
        locks.heartbeat.assert_awaited_once_with(SearchBackend.VECTOR, TENANT, processed=2)

    @pytest.mark.asyncio
    async def test_failed_record_raises_after_finishing_batch(self):
        # Arrange
        indexer = AsyncMock()
        indexer.index_record_by_id.side_effect = [
            RuntimeError("embedding model crashed"),
            IndexOutcome.indexed(),
        ]
        locks = AsyncMock()
        handler = VectorBatchIndexHandler(indexer=indexer, locks=locks)

        # Act
        with pytest.raises(RuntimeError, match="1 of 2 records failed"):
            await handler.handle(_job("a", "b"))

        # Assert
        assert indexer.index_record_by_id.await_count == 2
        locks.heartbeat.assert_awaited_once_with(SearchBackend.VECTOR, TENANT, processed=1)
