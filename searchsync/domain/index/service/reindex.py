"""ReindexCoordinator - runs sweeps under the reindex lock.

There are two completion protocols:

- synchronous: the caller owns the lock for the whole sweep, heartbeats it
  with the sweep's progress, and clears it when the sweep returns or raises.
- hand-off: the sweep only dispatches jobs. The lock stays in place for the
  workers, which heartbeat it; once they stop, staleness retires it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import timedelta

from searchsync.domain.index.model.lock import LockStatus, ReindexLock, SearchBackend
from searchsync.domain.index.model.result import ProgressCallback, ReindexProgress, ReindexResult
from searchsync.domain.index.port.query_engine import Partition
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.shared.error import ReindexInProgressError
from searchsync.domain.shared.queue import JobQueues
from searchsync.domain.shared.service import Service

logger = logging.getLogger(__name__)

Sweep = Callable[[], Awaitable[ReindexResult]]
PartitionSweep = Callable[[SearchIndexer, Partition | None], Awaitable[ReindexResult]]
OpenIndexer = Callable[[], AbstractAsyncContextManager[SearchIndexer]]


class SweepProgress:
    """Processed counts reported by one or more concurrent sweeps.

    Each `callback()` gets its own slot, so partitions sweeping the same
    entity do not overwrite each other.
    """

    def __init__(self) -> None:
        self._slots: list[dict[str, int]] = []

    def callback(self, then: ProgressCallback | None = None) -> ProgressCallback:
        slot: dict[str, int] = {}
        self._slots.append(slot)

        def on_progress(progress: ReindexProgress) -> None:
            slot[progress.entity_id] = progress.processed
            if then is not None:
                then(progress)

        return on_progress

    @property
    def processed(self) -> int:
        return sum(sum(slot.values()) for slot in self._slots)


class ReindexCoordinator(Service):
    locks: ReindexLockService
    queues: JobQueues
    fulltext_queue_name: str
    vector_queue_name: str
    heartbeat_interval: timedelta | None = None  # Defaults to a third of the staleness window

    async def run_exclusive(
        self,
        lock_type: SearchBackend,
        action: str,
        tenant_id: str,
        organization_id: str | None,
        sweep: Sweep,
        queued: bool,
        progress: SweepProgress | None = None,
    ) -> ReindexResult:
        """Acquire the (type, tenant) lock, then run the sweep.

        The lock is heartbeated while the sweep runs. For synchronous runs
        the counts in `progress`, if given, are written to the lock.

        Raises:
            ReindexInProgressError: Another live lock holds the key.
        """
        lock = await self._acquire(lock_type, action, tenant_id, organization_id)
        if queued:
            return await self._hand_off(lock, sweep)
        return await self._complete(lock, sweep, progress)

    async def _acquire(
        self,
        lock_type: SearchBackend,
        action: str,
        tenant_id: str,
        organization_id: str | None,
    ) -> ReindexLock:
        status = await self.locks.get_status(lock_type, tenant_id)
        if status is not None:
            raise ReindexInProgressError(status)

        acquisition = await self.locks.acquire(lock_type, action, tenant_id, organization_id)
        if not acquisition.acquired:
            # Lost the race between the status check and the insert
            raise ReindexInProgressError(_status_of(acquisition.lock))
        return acquisition.lock

    async def _complete(
        self, lock: ReindexLock, sweep: Sweep, progress: SweepProgress | None
    ) -> ReindexResult:
        try:
            async with self._keep_alive(lock, progress):
                return await sweep()
        finally:
            await self.locks.clear(lock.type, lock.tenant_id, started_at=lock.started_at)

    async def _hand_off(self, lock: ReindexLock, sweep: Sweep) -> ReindexResult:
        async with self._keep_alive(lock, None):
            result = await sweep()
        await self.locks.set_total(lock.type, lock.tenant_id, result.records_enqueued)
        logger.info(
            "Handed %s reindex for tenant %s to workers (%d jobs, %d records)",
            lock.type,
            lock.tenant_id,
            result.jobs_enqueued,
            result.records_enqueued,
        )
        return result

    def _keep_alive(self, lock: ReindexLock, progress: SweepProgress | None) -> "_KeepAlive":
        interval = self.heartbeat_interval or self.locks.stale_after / 3
        return _KeepAlive(self.locks, lock, progress, interval.total_seconds())

    async def cancel(self, lock_type: SearchBackend, tenant_id: str) -> int:
        """Drop queued work for the backend and release the lock.

        Returns the number of waiting and active jobs removed.
        """
        queue = self.queues.get(self.queue_name(lock_type))
        removed = await queue.clear() if queue is not None else 0
        await self.locks.clear(lock_type, tenant_id)
        logger.info(
            "Cancelled %s reindex for tenant %s (%d jobs removed)", lock_type, tenant_id, removed
        )
        return removed

    def queue_name(self, lock_type: SearchBackend) -> str:
        if lock_type is SearchBackend.FULLTEXT:
            return self.fulltext_queue_name
        return self.vector_queue_name


async def run_partitions(
    partition_count: int,
    open_indexer: OpenIndexer,
    sweep: PartitionSweep,
    partition_index: int | None = None,
) -> ReindexResult:
    """Run one sweep per partition concurrently and merge the results.

    Each partition gets its own indexer from `open_indexer`, so no two
    partitions share a database session. With `partition_index` set only
    that shard runs.
    """
    indexes = range(partition_count) if partition_index is None else [partition_index]

    async def run_one(index: int) -> ReindexResult:
        partition = Partition(count=partition_count, index=index) if partition_count > 1 else None
        async with open_indexer() as indexer:
            logger.debug("Starting partition %d/%d", index + 1, partition_count)
            return await sweep(indexer, partition)

    results = await asyncio.gather(*(run_one(index) for index in indexes))
    merged = ReindexResult()
    for result in results:
        merged.merge(result)
    return merged


def _status_of(lock: ReindexLock) -> LockStatus:
    return LockStatus(lock=lock, elapsed_seconds=lock.elapsed().total_seconds())


class _KeepAlive:
    """Heartbeats a held lock every `interval` seconds until the block exits."""

    def __init__(
        self,
        locks: ReindexLockService,
        lock: ReindexLock,
        progress: SweepProgress | None,
        interval: float,
    ) -> None:
        self._locks = locks
        self._lock = lock
        self._progress = progress
        self._interval = interval
        self._reported = 0
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "_KeepAlive":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        assert self._task is not None
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.beat()
            except Exception as e:
                logger.warning(
                    "Heartbeat for %s lock of tenant %s failed: %s",
                    self._lock.type,
                    self._lock.tenant_id,
                    e,
                )

    async def beat(self) -> None:
        processed = self._progress.processed if self._progress is not None else 0
        delta = max(processed - self._reported, 0)
        held = await self._locks.heartbeat(
            self._lock.type, self._lock.tenant_id, processed=delta, started_at=self._lock.started_at
        )
        if held:
            self._reported += delta
        else:
            logger.warning(
                "%s lock for tenant %s is no longer held by this run",
                self._lock.type,
                self._lock.tenant_id,
            )
