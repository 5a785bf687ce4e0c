"""Worker and WorkerPool for pull-based job processing."""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any

from apscheduler import AsyncScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dishka import AsyncContainer

from searchsync.domain.shared.error import SkippedJobs
from searchsync.domain.shared.job import (
    Job,
    JobHandler,
    WorkerConfig,
    WorkerState,
    WorkerStatus,
)
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.domain.shared.queue import JobQueue, JobQueues
from searchsync.util.di.scope import Scope

logger = logging.getLogger(__name__)


class Worker:
    """Pull-based worker that delegates each claimed job to a JobHandler.

    Workers claim jobs from a named queue using FOR UPDATE SKIP LOCKED, so
    several workers can share one queue without coordination. The Worker
    owns polling and status bookkeeping; the JobHandler owns the work.

    Configuration is read from the handler's class variables:
        __job_type__: Job type the handler accepts
        __queue__: Queue to claim from (overridable per worker)
        __batch_size__: Max jobs per claim
        __poll_interval__: Seconds between polls when idle
        __max_retries__: Max retry attempts before marking failed
        __claim_timeout__: Seconds before claim considered stale

    Example:
        worker = Worker(VectorBatchIndexHandler)
        worker.set_container(container)
        worker.start()
    """

    def __init__(
        self,
        handler_type: type[JobHandler[Any]],
        queue: str | None = None,
        name: str | None = None,
        poll_interval: float | None = None,
        max_retries: int | None = None,
        claim_timeout: float | None = None,
    ) -> None:
        self._handler_type = handler_type
        self._config = WorkerConfig(
            name=name or handler_type.__name__,
            queue=queue or handler_type.__queue__,
            job_type=handler_type.__job_type__,
            batch_size=handler_type.__batch_size__,
            poll_interval=(
                poll_interval if poll_interval is not None else handler_type.__poll_interval__
            ),
            max_retries=max_retries if max_retries is not None else handler_type.__max_retries__,
            claim_timeout=(
                claim_timeout if claim_timeout is not None else handler_type.__claim_timeout__
            ),
        )
        self._state = WorkerState(config=self._config)
        self._shutdown = False
        self._task: asyncio.Task | None = None
        self._container: AsyncContainer | None = None

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def handler_type(self) -> type[JobHandler[Any]]:
        return self._handler_type

    @property
    def config(self) -> WorkerConfig:
        return self._config

    @property
    def state(self) -> WorkerState:
        return self._state

    def set_container(self, container: AsyncContainer) -> None:
        """Set the DI container for scoped dependency resolution."""
        self._container = container

    def start(self) -> asyncio.Task:
        """Start the worker in a background task."""
        if self._container is None:
            raise RuntimeError("Container not set. Call set_container() first.")

        self._shutdown = False
        self._task = asyncio.create_task(self._run(), name=f"worker-{self.name}")
        logger.info(f"Worker '{self.name}' started on queue '{self._config.queue}'")
        return self._task

    def stop(self) -> None:
        """Signal the worker to stop after its current batch."""
        self._shutdown = True
        self._state.status = WorkerStatus.STOPPING
        logger.info(f"Worker '{self.name}' stopping...")

    async def _run(self) -> None:
        try:
            while not self._shutdown:
                had_jobs = await self._poll_once()
                if not had_jobs:
                    await asyncio.sleep(self._config.poll_interval)
        except asyncio.CancelledError:
            logger.info(f"Worker '{self.name}' cancelled")
            raise
        except Exception as e:
            logger.exception(f"Worker '{self.name}' crashed: {e}")
            self._state.error = e
            raise
        finally:
            logger.info(f"Worker '{self.name}' stopped")

    async def _poll_once(self) -> bool:
        """Claim one batch and process it within a UOW scope.

        Returns:
            True if jobs were processed, False if idle.
        """
        if self._container is None:
            raise RuntimeError("Container not set")

        self._state.status = WorkerStatus.CLAIMING

        async with self._container(scope=Scope.UOW) as scope:
            queues = await scope.get(JobQueues)
            queue = queues[self._config.queue]

            result = await queue.claim(limit=self._config.batch_size)
            if not result:
                self._state.status = WorkerStatus.IDLE
                return False

            self._state.status = WorkerStatus.PROCESSING
            self._state.current_batch = result.jobs
            self._state.last_claim_at = result.claimed_at

            try:
                handler = await scope.get(self._handler_type)
                for job in result.jobs:
                    await self._process(handler, queue, job)
            finally:
                self._state.current_batch = []
                self._state.status = WorkerStatus.IDLE

        return True

    async def _process(self, handler: JobHandler[Any], queue: JobQueue, job: Job) -> None:
        """Run one job; failures go back to the queue for retry."""
        try:
            await handler.handle(job)
        except SkippedJobs as e:
            logger.warning(f"Worker '{self.name}' skipping job {job.id}: {e.reason}")
            if job.id in e.job_ids:
                await queue.mark_skipped(job.id, e.reason)
            else:
                await queue.mark_completed(job.id)
            self._state.processed_count += 1
        except Exception as e:
            self._state.failed_count += 1
            self._state.error = e
            logger.error(
                f"Worker '{self.name}' job {job.id} failed (attempt {job.attempt + 1}): {e}"
            )
            await queue.mark_failed_with_retry(job.id, str(e), max_retries=self._config.max_retries)
        else:
            await queue.mark_completed(job.id)
            self._state.processed_count += 1


class WorkerPool:
    """Manages workers and periodically resets stale claims.

    Usage:
        pool = WorkerPool(container)
        pool.register(FulltextBatchIndexHandler, concurrency=4)

        async with pool:
            await stop_event.wait()
    """

    def __init__(
        self,
        container: AsyncContainer | None = None,
        stale_claim_interval: float = 60.0,
    ) -> None:
        self._container = container
        self._workers: list[Worker] = []
        self._stale_claim_interval = stale_claim_interval
        self._scheduler: AsyncScheduler | None = None
        self._exit_stack: AsyncExitStack | None = None

    def set_container(self, container: AsyncContainer) -> None:
        self._container = container
        for worker in self._workers:
            worker.set_container(container)

    @property
    def workers(self) -> list[Worker]:
        return self._workers

    def register(
        self,
        handler_type: type[JobHandler[Any]],
        queue: str | None = None,
        concurrency: int = 1,
        **overrides: Any,
    ) -> list[Worker]:
        """Create `concurrency` workers for a handler, all on the same queue.

        Args:
            handler_type: JobHandler subclass to register.
            queue: Queue name, when it differs from the handler's __queue__.
            concurrency: Number of workers polling the queue.
            overrides: poll_interval / max_retries / claim_timeout overrides.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        created: list[Worker] = []
        for index in range(concurrency):
            name = handler_type.__name__ if concurrency == 1 else f"{handler_type.__name__}-{index}"
            worker = Worker(handler_type, queue=queue, name=name, **overrides)
            if self._container is not None:
                worker.set_container(self._container)
            self._workers.append(worker)
            created.append(worker)

        logger.debug(f"Registered handler '{handler_type.__name__}' as {concurrency} worker(s)")
        return created

    def get_worker(self, name: str) -> Worker | None:
        for worker in self._workers:
            if worker.name == name:
                return worker
        return None

    async def start(self) -> None:
        """Start all workers and the stale claim reset schedule."""
        if self._container is None:
            raise RuntimeError("Container not set. Call set_container() first.")

        for worker in self._workers:
            if worker._container is None:
                worker.set_container(self._container)

        self._exit_stack = AsyncExitStack()
        await self._exit_stack.__aenter__()

        if self._stale_claim_interval > 0 and self._workers:
            self._scheduler = AsyncScheduler()
            await self._exit_stack.enter_async_context(self._scheduler)
            await self._scheduler.add_schedule(
                self._reset_stale_claims,
                IntervalTrigger(seconds=self._stale_claim_interval),
                id="stale-claim-reset",
            )
            await self._scheduler.start_in_background()

        for worker in self._workers:
            worker.start()

        logger.info(f"WorkerPool started with {len(self._workers)} workers")

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop all workers gracefully.

        Args:
            timeout: Maximum time to wait for workers to finish their batch.
        """
        for worker in self._workers:
            worker.stop()

        tasks = [w._task for w in self._workers if w._task and not w._task.done()]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()

        if self._exit_stack:
            await self._exit_stack.__aexit__(None, None, None)
            self._exit_stack = None
            self._scheduler = None

        logger.info("WorkerPool stopped")

    async def __aenter__(self) -> "WorkerPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.stop()

    async def _reset_stale_claims(self) -> None:
        """Scheduled task: return abandoned claims on every served queue to pending."""
        if self._container is None:
            return

        timeouts: dict[str, float] = {}
        for worker in self._workers:
            queue = worker.config.queue
            timeouts[queue] = max(timeouts.get(queue, 0.0), worker.config.claim_timeout)

        try:
            repo = await self._container.get(JobRepository)
            for queue, timeout in timeouts.items():
                count = await repo.reset_stale_claims(queue, timeout)
                if count > 0:
                    logger.info(f"Reset {count} stale claims on '{queue}'")
        except (asyncio.CancelledError, SystemExit, KeyboardInterrupt):
            raise
        except Exception as e:
            logger.error(f"Stale claim cleanup failed: {e}")
