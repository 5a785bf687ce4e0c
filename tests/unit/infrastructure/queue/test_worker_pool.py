"""Unit tests for WorkerPool registration, lifecycle and stale claim resets."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from searchsync.domain.index.event.reindex_job import ReindexJob
from searchsync.domain.shared.job import ClaimResult, JobHandler
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.domain.shared.queue import JobQueues
from searchsync.infrastructure.queue.worker import WorkerPool


class SlowHandler(JobHandler[ReindexJob]):
    __queue__ = "fulltext-indexing"
    __claim_timeout__ = 120.0

    async def handle(self, job: ReindexJob) -> None:
        pass


class FastHandler(JobHandler[ReindexJob]):
    __queue__ = "vector-indexing"
    __claim_timeout__ = 30.0

    async def handle(self, job: ReindexJob) -> None:
        pass


def make_mock_container():
    """Container mock with an always-empty queue and a stubbed JobRepository."""
    queue = AsyncMock()
    queue.claim.return_value = ClaimResult(jobs=[], claimed_at=datetime.now(UTC))
    queues = JobQueues(queues={"fulltext-indexing": queue, "vector-indexing": queue})

    repo = AsyncMock()
    repo.reset_stale_claims.return_value = 0

    async def get_dependency(cls):
        if cls is JobQueues:
            return queues
        if cls is JobRepository:
            return repo
        return AsyncMock()

    scope = AsyncMock()
    scope.get = AsyncMock(side_effect=get_dependency)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=scope)
    context.__aexit__ = AsyncMock(return_value=None)

    container = MagicMock()
    container.return_value = context
    container.get = AsyncMock(side_effect=get_dependency)

    return container, repo


class TestRegister:
    def test_single_worker_keeps_handler_name(self):
        pool = WorkerPool()

        workers = pool.register(SlowHandler)

        assert [w.name for w in workers] == ["SlowHandler"]
        assert pool.get_worker("SlowHandler") is workers[0]

    def test_concurrency_names_each_worker(self):
        pool = WorkerPool()

        pool.register(SlowHandler, concurrency=3, poll_interval=0.01)

        assert [w.name for w in pool.workers] == ["SlowHandler-0", "SlowHandler-1", "SlowHandler-2"]
        assert all(w.config.poll_interval == 0.01 for w in pool.workers)
        assert all(w.config.queue == "fulltext-indexing" for w in pool.workers)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            WorkerPool().register(SlowHandler, concurrency=0)

    def test_get_worker_unknown(self):
        assert WorkerPool().get_worker("nope") is None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_requires_container(self):
        pool = WorkerPool()
        pool.register(SlowHandler)

        with pytest.raises(RuntimeError):
            await pool.start()

    @pytest.mark.asyncio
    async def test_starts_and_stops_cleanly(self):
        # Arrange
        container, _ = make_mock_container()
        pool = WorkerPool(container=container, stale_claim_interval=0)
        pool.register(SlowHandler, poll_interval=0.01)
        pool.register(FastHandler, poll_interval=0.01)

        # Act
        async with pool:
            await asyncio.sleep(0.05)
            running = [w._task is not None and not w._task.done() for w in pool.workers]

        # Assert
        assert running == [True, True]
        assert all(w._shutdown for w in pool.workers)

    @pytest.mark.asyncio
    async def test_set_container_propagates(self):
        container, _ = make_mock_container()
        pool = WorkerPool()
        pool.register(SlowHandler, concurrency=2)

        pool.set_container(container)

        assert all(w._container is container for w in pool.workers)


class TestStaleClaims:
    @pytest.mark.asyncio
    async def test_resets_each_queue_with_longest_timeout(self):
        # Arrange
        container, repo = make_mock_container()
        pool = WorkerPool(container=container)
        pool.register(SlowHandler)
        pool.register(FastHandler, concurrency=2)
        pool.register(FastHandler, queue="vector-indexing", claim_timeout=90.0)

        # Act
        await pool._reset_stale_claims()

        # Assert
        calls = {c.args[0]: c.args[1] for c in repo.reset_stale_claims.await_args_list}
        assert calls == {"fulltext-indexing": 120.0, "vector-indexing": 90.0}

    @pytest.mark.asyncio
    async def test_cleanup_errors_are_logged_not_raised(self):
        container, repo = make_mock_container()
        repo.reset_stale_claims.side_effect = RuntimeError("db gone")
        pool = WorkerPool(container=container)
        pool.register(SlowHandler)

        await pool._reset_stale_claims()

        repo.reset_stale_claims.assert_awaited_once()
