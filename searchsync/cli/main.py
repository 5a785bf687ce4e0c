"""Main CLI application using Cyclopts.

Unlike the HTTP API, the CLI runs sweeps in-process: it builds its own DI
container and talks to the database and the search backends directly.
"""

import asyncio
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

import cyclopts
from dishka import AsyncContainer
from sqlalchemy.ext.asyncio import AsyncEngine

from searchsync.application.di import create_container, create_worker_pool
from searchsync.cli.console import get_console
from searchsync.config import Config, configure_logging
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.model.result import ProgressCallback, ReindexPhase, ReindexProgress
from searchsync.domain.index.port.query_engine import Partition
from searchsync.domain.index.port.search import FullTextStrategy
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.reindex import (
    ReindexCoordinator,
    SweepProgress,
    run_partitions,
)
from searchsync.domain.shared.error import ReindexInProgressError, SearchSyncError
from searchsync.domain.shared.queue import JobQueues
from searchsync.infrastructure.persistence.migrate import prepare_database
from searchsync.util.di.scope import Scope

Backend = Literal["fulltext", "vector", "all"]

app = cyclopts.App(
    name="searchsync",
    help="Search reindexing pipeline: sweeps, workers, and the HTTP API.",
)

console = get_console()


def _backends(backend: Backend) -> list[SearchBackend]:
    if backend == "all":
        return list(SearchBackend)
    return [SearchBackend(backend)]


def _load_config() -> Config:
    config = Config()  # type: ignore[call-arg]
    configure_logging(config.logging)
    return config


@asynccontextmanager
async def _container(config: Config) -> AsyncIterator[AsyncContainer]:
    container = create_container(config)
    try:
        engine = await container.get(AsyncEngine)
        await prepare_database(engine, config.database)
        yield container
    finally:
        await container.close()


def _opener(container: AsyncContainer):
    """Open a SearchIndexer in its own unit-of-work scope."""

    @asynccontextmanager
    async def open_indexer() -> AsyncIterator[SearchIndexer]:
        async with container(scope=Scope.UOW) as scope:
            yield await scope.get(SearchIndexer)

    return open_indexer


def _progress() -> ProgressCallback:
    def report(progress: ReindexProgress) -> None:
        if progress.phase is ReindexPhase.COMPLETE:
            console.info(f"  {progress.entity_id}: {progress.processed} records")

    return report


def _run(coro) -> None:
    """Run a command coroutine, turning searchsync errors into exit code 1."""
    try:
        ok = asyncio.run(coro)
    except ReindexInProgressError as e:
        console.error(e.message, hint="Wait for it to finish, or pass --force to take over")
        sys.exit(1)
    except SearchSyncError as e:
        console.error(e.message)
        sys.exit(1)
    if ok is False:
        sys.exit(1)


# =============================================================================
# reindex
# =============================================================================


@app.command
def reindex(
    tenant: str,
    *,
    org: str | None = None,
    entity: str | None = None,
    backend: Backend = "all",
    queue: bool = False,
    purge: bool = False,
    partitions: int | None = None,
    partition: int | None = None,
    force: bool = False,
) -> None:
    """Rebuild search indexes for a tenant.

    Args:
        tenant: Tenant to reindex.
        org: Restrict the sweep to one organization.
        entity: Reindex one entity instead of every enabled one.
        backend: Which backend to rebuild.
        queue: Enqueue jobs for workers instead of indexing in-process.
        purge: Remove existing entries (and zero coverage) before the sweep.
        partitions: Split the sweep into this many shards run in parallel.
        partition: Run only this shard (0-based) of --partitions.
        force: Clear an existing lock before starting.
    """
    config = _load_config()
    count = partitions or config.indexer.partitions
    if partition is not None and not 0 <= partition < count:
        console.error(f"--partition must be between 0 and {count - 1}")
        sys.exit(2)

    async def run() -> bool:
        async with _container(config) as container:
            coordinator = await container.get(ReindexCoordinator)
            locks = await container.get(ReindexLockService)
            open_indexer = _opener(container)

            if entity is not None:
                async with open_indexer() as indexer:
                    if not indexer.is_entity_enabled(entity):
                        console.error(f"Entity '{entity}' is not configured for search")
                        return False

            ok = True
            for lock_type in _backends(backend):
                if force and await locks.clear(lock_type, tenant):
                    console.warning(f"Cleared existing {lock_type} lock")

                progress = SweepProgress()
                sweep = _partitioned_sweep(
                    open_indexer,
                    lock_type,
                    tenant,
                    org,
                    entity,
                    queue,
                    purge,
                    count,
                    partition,
                    progress=progress,
                )
                action = f"reindex:{entity or 'all'}"
                with console.status(f"Reindexing {lock_type}..."):
                    result = await coordinator.run_exclusive(
                        lock_type, action, tenant, org, sweep, queued=queue, progress=progress
                    )
                console.reindex_result(lock_type.value, result, queued=queue)
                ok = ok and result.success
            return ok

    _run(run())


async def _purge(
    open_indexer,
    lock_type: SearchBackend,
    tenant: str,
    org: str | None,
    entity: str | None,
) -> None:
    """Purge once up front, never per partition."""
    async with open_indexer() as indexer:
        strategy = indexer.search_service.get_strategy(lock_type.value)
        if lock_type is SearchBackend.FULLTEXT and entity is None:
            if isinstance(strategy, FullTextStrategy):
                await strategy.recreate_index(tenant)
                if indexer.coverage is not None:
                    for entity_id in indexer.list_enabled_entities():
                        await indexer.coverage.reset_after_purge(
                            entity_id, tenant, org, backends=(lock_type,)
                        )
                console.info(f"Recreated {lock_type} index")
            return

        entities = [entity] if entity else indexer.list_enabled_entities()
        for entity_id in entities:
            await indexer.purge_entity(entity_id, tenant, org, strategies=(lock_type.value,))
        console.info(f"Purged {len(entities)} entities from {lock_type}")


def _partitioned_sweep(
    open_indexer,
    lock_type: SearchBackend,
    tenant: str,
    org: str | None,
    entity: str | None,
    use_queue: bool,
    purge: bool,
    count: int,
    partition_index: int | None,
    progress: SweepProgress | None = None,
):
    """The locked sweep: an optional one-off purge, then every shard in parallel."""
    display = _progress()

    async def one(indexer: SearchIndexer, shard: Partition | None):
        on_progress = progress.callback(display) if progress is not None else display
        if lock_type is SearchBackend.FULLTEXT:
            if entity:
                return await indexer.reindex_entity_to_fulltext(
                    entity,
                    tenant,
                    org,
                    recreate_index=False,
                    use_queue=use_queue,
                    partition=shard,
                    on_progress=on_progress,
                )
            return await indexer.reindex_all_to_fulltext(
                tenant,
                org,
                recreate_index=False,
                use_queue=use_queue,
                partition=shard,
                on_progress=on_progress,
            )
        if entity:
            return await indexer.reindex_entity_to_vector(
                entity, tenant, org, use_queue=use_queue, partition=shard, on_progress=on_progress
            )
        return await indexer.reindex_all_to_vector(
            tenant, org, use_queue=use_queue, partition=shard, on_progress=on_progress
        )

    async def sweep():
        if purge:
            await _purge(open_indexer, lock_type, tenant, org, entity)
        return await run_partitions(count, open_indexer, one, partition_index=partition_index)

    return sweep


# =============================================================================
# Single records and status
# =============================================================================


@app.command
def index(
    entity: str,
    record_id: str,
    *,
    tenant: str,
    org: str | None = None,
    backend: Backend = "all",
) -> None:
    """Index one record by id.

    Args:
        entity: Entity the record belongs to.
        record_id: Record identifier.
        tenant: Tenant owning the record.
        org: Organization owning the record.
        backend: Which backend to write to.
    """
    config = _load_config()
    strategies = None if backend == "all" else (backend,)

    async def run() -> bool:
        async with _container(config) as container:
            async with _opener(container)() as indexer:
                outcome = await indexer.index_record_by_id(
                    entity, record_id, tenant, org, strategies=strategies
                )
        if outcome.action == "indexed":
            console.success(f"Indexed {entity}:{record_id}")
            return True
        console.warning(f"Skipped {entity}:{record_id}: {outcome.reason}")
        return False

    _run(run())


@app.command
def status(tenant: str) -> None:
    """Show reindex locks and queue depth for a tenant.

    Args:
        tenant: Tenant to inspect.
    """
    config = _load_config()

    async def run() -> bool:
        async with _container(config) as container:
            locks = await container.get(ReindexLockService)
            coordinator = await container.get(ReindexCoordinator)
            queues = await container.get(JobQueues)
            for lock_type in SearchBackend:
                queue = queues.get(coordinator.queue_name(lock_type))
                counts = await queue.counts() if queue is not None else None
                console.lock_status(
                    lock_type.value, await locks.get_status(lock_type, tenant), counts
                )
        return True

    _run(run())


@app.command
def unlock(tenant: str, *, backend: Backend = "all") -> None:
    """Clear a reindex lock without touching queued jobs.

    Args:
        tenant: Tenant whose lock to clear.
        backend: Which lock to clear.
    """
    config = _load_config()

    async def run() -> bool:
        async with _container(config) as container:
            locks = await container.get(ReindexLockService)
            for lock_type in _backends(backend):
                if await locks.clear(lock_type, tenant):
                    console.success(f"Cleared {lock_type} lock")
                else:
                    console.info(f"No {lock_type} lock held")
        return True

    _run(run())


@app.command
def entities() -> None:
    """List entities enabled for search."""
    config = _load_config()

    async def run() -> bool:
        async with _container(config) as container:
            async with _opener(container)() as indexer:
                enabled = indexer.list_enabled_entities()
        if not enabled:
            console.warning("No entities enabled. Configure 'modules' or install a module.")
            return True
        console.table([{"entity": e} for e in enabled], [("entity", "Entity")])
        return True

    _run(run())


# =============================================================================
# Long-running processes
# =============================================================================


@app.command
def worker(queue: str | None = None, *, concurrency: int | None = None) -> None:
    """Process queued batch-index jobs until interrupted.

    Args:
        queue: Queue to serve; both index queues when omitted.
        concurrency: Workers per queue (defaults to queue.concurrency).
    """
    config = _load_config()

    async def run() -> bool:
        async with _container(config) as container:
            try:
                pool = create_worker_pool(
                    container,
                    config,
                    queues=[queue] if queue else None,
                    concurrency=concurrency,
                )
            except ValueError as e:
                console.error(str(e))
                return False

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)

            async with pool:
                console.info(f"Running {len(pool.workers)} workers. Ctrl+C to stop.")
                await stop.wait()
        console.success("Workers stopped")
        return True

    _run(run())


@app.command
def serve(host: str | None = None, port: int | None = None) -> None:
    """Run the HTTP API.

    Args:
        host: Bind address (defaults to server.host).
        port: Bind port (defaults to server.port).
    """
    import uvicorn

    from searchsync.application.api.rest.app import create_app

    config = _load_config()
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
