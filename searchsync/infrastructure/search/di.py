import logging
from datetime import timedelta
from typing import AsyncIterable

from dishka import provide

from searchsync.config import Config, data_dir
from searchsync.domain.index.model.entity_config import EntityConfigRegistry
from searchsync.domain.index.port.coverage_repository import CoverageRepository
from searchsync.domain.index.port.lock_repository import ReindexLockRepository
from searchsync.domain.index.port.query_engine import QueryEngine
from searchsync.domain.index.port.search import SearchStrategy
from searchsync.domain.index.service.coverage import CoverageTracker
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.reindex import ReindexCoordinator
from searchsync.domain.index.service.search import SearchService
from searchsync.domain.shared.queue import JobQueues
from searchsync.infrastructure.search.discovery import build_registry
from searchsync.infrastructure.search.fulltext.strategy import MeilisearchStrategy, create_client
from searchsync.infrastructure.search.vector.strategy import ChromaVectorStrategy
from searchsync.util.di.base import Provider
from searchsync.util.di.scope import Scope

logger = logging.getLogger(__name__)


class SearchProvider(Provider):
    """Provides the search strategies, the entity registry, and the indexing services."""

    @provide(scope=Scope.APP)
    def get_registry(self, config: Config) -> EntityConfigRegistry:
        return build_registry(config.modules)

    @provide(scope=Scope.APP)
    async def get_search_service(self, config: Config) -> AsyncIterable[SearchService]:
        strategies: list[SearchStrategy] = []
        client = None

        if config.fulltext is not None:
            client = create_client(config.fulltext)
            strategies.append(MeilisearchStrategy(config.fulltext, client))
            logger.info("Fulltext strategy: Meilisearch at %s", config.fulltext.url)

        if config.vector is not None:
            vector_config = config.vector
            if vector_config.persist_dir is None:
                vector_config = vector_config.model_copy(
                    update={"persist_dir": data_dir() / "vectors"}
                )
            strategies.append(ChromaVectorStrategy(vector_config))
            logger.info("Vector strategy: ChromaDB at %s", vector_config.persist_dir)

        if not strategies:
            logger.warning("No search strategies configured")

        yield SearchService(strategies)

        if client is not None:
            await client.aclose()

    @provide(scope=Scope.APP)
    def get_lock_service(self, repo: ReindexLockRepository, config: Config) -> ReindexLockService:
        return ReindexLockService(
            repo=repo, stale_after=timedelta(seconds=config.lock.stale_after_seconds)
        )

    @provide(scope=Scope.APP)
    def get_coverage_tracker(self, repo: CoverageRepository) -> CoverageTracker:
        return CoverageTracker(repo=repo)

    @provide(scope=Scope.APP)
    def get_coordinator(
        self, locks: ReindexLockService, queues: JobQueues, config: Config
    ) -> ReindexCoordinator:
        return ReindexCoordinator(
            locks=locks,
            queues=queues,
            fulltext_queue_name=config.queue.fulltext_queue,
            vector_queue_name=config.queue.vector_queue,
        )

    @provide(scope=Scope.UOW)
    def get_indexer(
        self,
        search_service: SearchService,
        registry: EntityConfigRegistry,
        query_engine: QueryEngine,
        queues: JobQueues,
        coverage: CoverageTracker,
        locks: ReindexLockService,
        config: Config,
    ) -> SearchIndexer:
        return SearchIndexer(
            search_service=search_service,
            registry=registry,
            query_engine=query_engine,
            fulltext_queue=queues.get(config.queue.fulltext_queue),
            vector_queue=queues.get(config.queue.vector_queue),
            coverage=coverage,
            locks=locks,
            page_size=config.indexer.page_size,
            max_pages=config.indexer.max_pages,
        )
