"""Unit tests for ReindexLockService and the lock model."""

from datetime import UTC, datetime, timedelta

import pytest

from searchsync.domain.index.model.lock import LockStatus, ReindexLock, SearchBackend

TENANT = "acme"
FULLTEXT = SearchBackend.FULLTEXT


class TestReindexLockModel:
    def test_start_sets_heartbeat_to_started_at(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)

        lock = ReindexLock.start(FULLTEXT, "reindex", TENANT, now=now)

        assert lock.started_at == lock.heartbeat_at == now
        assert lock.processed_count == 0
        assert lock.total_count == 0

    def test_staleness_is_measured_from_heartbeat(self):
        start = datetime(2026, 1, 1, tzinfo=UTC)
        lock = ReindexLock.start(FULLTEXT, "reindex", TENANT, now=start)
        fresh = lock.model_copy(update={"heartbeat_at": start + timedelta(minutes=30)})

        later = start + timedelta(minutes=35)

        assert lock.is_stale(timedelta(minutes=10), now=later) is True
        assert fresh.is_stale(timedelta(minutes=10), now=later) is False

    def test_conflict_payload(self):
        start = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        lock = ReindexLock(
            type=SearchBackend.VECTOR,
            action="reindex:all",
            tenant_id=TENANT,
            started_at=start,
            heartbeat_at=start,
            processed_count=40,
            total_count=100,
        )

        payload = LockStatus(lock=lock, elapsed_seconds=150).to_payload()

        assert payload == {
            "type": "vector",
            "action": "reindex:all",
            "started_at": start.isoformat(),
            "elapsed_minutes": 2,
            "processed_count": 40,
            "total_count": 100,
        }


class TestReindexLockService:
    @pytest.mark.asyncio
    async def test_acquire_then_status(self, lock_service):
        # Act
        acquisition = await lock_service.acquire(FULLTEXT, "reindex", TENANT, "org-1")
        status = await lock_service.get_status(FULLTEXT, TENANT)

        # Assert
        assert acquisition.acquired is True
        assert status is not None
        assert status.lock.organization_id == "org-1"
        assert status.elapsed_seconds >= 0

    @pytest.mark.asyncio
    async def test_second_acquire_returns_holder_unmodified(self, lock_service):
        first = await lock_service.acquire(FULLTEXT, "clear", TENANT)

        second = await lock_service.acquire(FULLTEXT, "reindex", TENANT)

        assert second.acquired is False
        assert second.lock == first.lock

    @pytest.mark.asyncio
    async def test_stale_lock_is_invisible_and_replaceable(self, lock_service, lock_repo):
        # Arrange
        await lock_service.acquire(FULLTEXT, "old", TENANT)
        lock_repo.backdate(FULLTEXT, TENANT, timedelta(minutes=11))

        # Act
        status = await lock_service.get_status(FULLTEXT, TENANT)
        acquisition = await lock_service.acquire(FULLTEXT, "new", TENANT)

        # Assert
        assert status is None
        assert acquisition.acquired is True
        assert (await lock_repo.get(FULLTEXT, TENANT)).action == "new"

    @pytest.mark.asyncio
    async def test_heartbeat_accumulates_progress(self, lock_service, lock_repo):
        # Arrange
        await lock_service.acquire(FULLTEXT, "reindex", TENANT)
        await lock_service.set_total(FULLTEXT, TENANT, 500)

        # Act
        await lock_service.heartbeat(FULLTEXT, TENANT, processed=200)
        await lock_service.heartbeat(FULLTEXT, TENANT, processed=50)

        # Assert
        lock = await lock_repo.get(FULLTEXT, TENANT)
        assert lock.processed_count == 250
        assert lock.total_count == 500
        assert lock.heartbeat_at >= lock.started_at

    @pytest.mark.asyncio
    async def test_heartbeat_without_lock(self, lock_service):
        assert await lock_service.heartbeat(FULLTEXT, TENANT, processed=1) is False

    @pytest.mark.asyncio
    async def test_clear(self, lock_service):
        await lock_service.acquire(FULLTEXT, "reindex", TENANT)

        assert await lock_service.clear(FULLTEXT, TENANT) is True
        assert await lock_service.clear(FULLTEXT, TENANT) is False
        assert await lock_service.get_status(FULLTEXT, TENANT) is None

    @pytest.mark.asyncio
    async def test_clear_for_a_replaced_holder_keeps_the_new_lock(self, lock_service, lock_repo):
        # Arrange
        first = await lock_service.acquire(FULLTEXT, "reindex", TENANT)
        lock_repo.backdate(FULLTEXT, TENANT, timedelta(hours=1))
        second = await lock_service.acquire(FULLTEXT, "clear", TENANT)

        # Act
        cleared = await lock_service.clear(FULLTEXT, TENANT, started_at=first.lock.started_at)
        beat = await lock_service.heartbeat(
            FULLTEXT, TENANT, processed=5, started_at=first.lock.started_at
        )

        # Assert
        assert second.acquired is True
        assert cleared is False
        assert beat is False
        held = await lock_repo.get(FULLTEXT, TENANT)
        assert held.action == "clear"
        assert held.processed_count == 0
