import logging

from dishka import AsyncContainer, from_context, make_async_container
from starlette.requests import Request

from searchsync.config import Config
from searchsync.domain.index.handler import FulltextBatchIndexHandler, VectorBatchIndexHandler
from searchsync.infrastructure.persistence import PersistenceProvider
from searchsync.infrastructure.queue import QueueProvider, WorkerPool
from searchsync.infrastructure.search.di import SearchProvider
from searchsync.util.di.base import Provider
from searchsync.util.di.scope import Scope

logger = logging.getLogger(__name__)


class ContextProvider(Provider):
    config = from_context(provides=Config, scope=Scope.APP)
    request = from_context(provides=Request, scope=Scope.UOW)


def create_container(config: Config | None = None) -> AsyncContainer:
    # Pydantic Settings populates from env vars at runtime
    config = config or Config()  # type: ignore[call-arg]

    return make_async_container(
        ContextProvider(),
        PersistenceProvider(),
        QueueProvider(),
        SearchProvider(),
        context={Config: config},
        scopes=Scope,  # type: ignore[arg-type]  # Custom scope class
    )


def create_worker_pool(
    container: AsyncContainer,
    config: Config,
    queues: list[str] | None = None,
    concurrency: int | None = None,
) -> WorkerPool:
    """A pool serving the named queues (both when unset) at the configured concurrency."""
    handlers = {
        config.queue.fulltext_queue: FulltextBatchIndexHandler,
        config.queue.vector_queue: VectorBatchIndexHandler,
    }
    selected = queues if queues is not None else list(handlers)

    pool = WorkerPool(container, stale_claim_interval=config.queue.stale_claim_interval)
    for queue in selected:
        handler = handlers.get(queue)
        if handler is None:
            raise ValueError(f"Unknown queue '{queue}'. Known queues: {', '.join(handlers)}")
        pool.register(
            handler,
            queue=queue,
            concurrency=concurrency or config.queue.concurrency,
            poll_interval=config.queue.poll_interval,
            claim_timeout=config.queue.claim_timeout,
            max_retries=config.queue.max_retries,
        )
    return pool
