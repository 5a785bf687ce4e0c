"""Unit tests for building the worker pool from configuration."""

from unittest.mock import MagicMock

import pytest

from searchsync.application.di import create_worker_pool
from searchsync.config import Config, LockConfig, QueueConfig
from searchsync.domain.index.handler import FulltextBatchIndexHandler, VectorBatchIndexHandler


def _config(**queue) -> Config:
    return Config(lock=LockConfig(stale_after_seconds=600), queue=QueueConfig(**queue))


class TestCreateWorkerPool:
    def test_serves_both_queues_by_default(self):
        pool = create_worker_pool(MagicMock(), _config())

        assert [w.handler_type for w in pool.workers] == [
            FulltextBatchIndexHandler,
            VectorBatchIndexHandler,
        ]
        assert [w.config.queue for w in pool.workers] == ["fulltext-indexing", "vector-indexing"]

    def test_handler_retry_limits_kept_unless_configured(self):
        default = create_worker_pool(MagicMock(), _config())
        overridden = create_worker_pool(MagicMock(), _config(max_retries=1))

        assert [w.config.max_retries for w in default.workers] == [3, 5]
        assert [w.config.max_retries for w in overridden.workers] == [1, 1]

    def test_concurrency_and_queue_selection(self):
        pool = create_worker_pool(
            MagicMock(), _config(concurrency=2, claim_timeout=45.0), queues=["vector-indexing"]
        )

        assert [w.name for w in pool.workers] == [
            "VectorBatchIndexHandler-0",
            "VectorBatchIndexHandler-1",
        ]
        assert all(w.config.claim_timeout == 45.0 for w in pool.workers)

    def test_explicit_concurrency_wins(self):
        pool = create_worker_pool(
            MagicMock(), _config(concurrency=2), queues=["fulltext-indexing"], concurrency=3
        )

        assert len(pool.workers) == 3

    def test_unknown_queue(self):
        with pytest.raises(ValueError, match="Unknown queue 'emails'"):
            create_worker_pool(MagicMock(), _config(), queues=["emails"])
