"""ReindexLockRepository port."""

from datetime import datetime
from typing import Protocol

from searchsync.domain.index.model.lock import LockAcquisition, ReindexLock, SearchBackend


class ReindexLockRepository(Protocol):
    """Storage for reindex locks, one row per (type, tenant).

    `acquire` must be atomic: of any number of concurrent callers for the same
    key, exactly one may succeed.
    """

    async def acquire(self, lock: ReindexLock, stale_before: datetime) -> LockAcquisition:
        """Insert the lock unless a fresher one exists.

        A row whose heartbeat is older than `stale_before` is replaced.
        """
        ...

    async def get(self, type: SearchBackend, tenant_id: str) -> ReindexLock | None: ...

    async def delete(
        self, type: SearchBackend, tenant_id: str, started_at: datetime | None = None
    ) -> bool:
        """Remove the lock. With `started_at` only the holder that started then."""
        ...

    async def record_progress(
        self,
        type: SearchBackend,
        tenant_id: str,
        processed_delta: int = 0,
        total_count: int | None = None,
        started_at: datetime | None = None,
    ) -> bool:
        """Bump processed_count, optionally set total_count, refresh heartbeat.

        Returns False when there is no lock to update, or when `started_at`
        is given and the lock belongs to another holder.
        """
        ...
