"""ReindexLockService - per-tenant mutual exclusion for reindex runs."""

import logging
from datetime import UTC, datetime, timedelta

from searchsync.domain.index.model.lock import (
    LockAcquisition,
    LockStatus,
    ReindexLock,
    SearchBackend,
)
from searchsync.domain.index.port.lock_repository import ReindexLockRepository
from searchsync.domain.shared.service import Service

logger = logging.getLogger(__name__)


class ReindexLockService(Service):
    """Acquire, inspect, heartbeat, and clear reindex locks.

    A lock whose last heartbeat is older than `stale_after` counts as
    released: get_status() reports nothing and acquire() replaces it.
    """

    repo: ReindexLockRepository
    stale_after: timedelta

    async def acquire(
        self,
        type: SearchBackend,
        action: str,
        tenant_id: str,
        organization_id: str | None = None,
    ) -> LockAcquisition:
        now = datetime.now(UTC)
        lock = ReindexLock.start(type, action, tenant_id, organization_id, now=now)
        result = await self.repo.acquire(lock, stale_before=now - self.stale_after)
        if result.acquired:
            logger.info("Acquired %s reindex lock for tenant %s (%s)", type, tenant_id, action)
        else:
            logger.info(
                "%s reindex lock for tenant %s is held (%s since %s)",
                type,
                tenant_id,
                result.lock.action,
                result.lock.started_at.isoformat(),
            )
        return result

    async def get_status(self, type: SearchBackend, tenant_id: str) -> LockStatus | None:
        """Return the live lock with its elapsed time, or None if absent or stale."""
        lock = await self.repo.get(type, tenant_id)
        if lock is None:
            return None
        now = datetime.now(UTC)
        if lock.is_stale(self.stale_after, now=now):
            logger.debug("Ignoring stale %s lock for tenant %s", type, tenant_id)
            return None
        return LockStatus(lock=lock, elapsed_seconds=lock.elapsed(now).total_seconds())

    async def clear(
        self, type: SearchBackend, tenant_id: str, started_at: datetime | None = None
    ) -> bool:
        """Release the lock; with `started_at`, only if that holder still owns it."""
        cleared = await self.repo.delete(type, tenant_id, started_at=started_at)
        if cleared:
            logger.info("Cleared %s reindex lock for tenant %s", type, tenant_id)
        return cleared

    async def heartbeat(
        self,
        type: SearchBackend,
        tenant_id: str,
        processed: int = 0,
        started_at: datetime | None = None,
    ) -> bool:
        """Add `processed` to the lock's progress and refresh its heartbeat."""
        return await self.repo.record_progress(
            type, tenant_id, processed_delta=processed, started_at=started_at
        )

    async def set_total(self, type: SearchBackend, tenant_id: str, total: int) -> bool:
        return await self.repo.record_progress(type, tenant_id, total_count=total)
