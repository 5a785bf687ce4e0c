from dishka import provide

from searchsync.config import Config
from searchsync.domain.index.handler import FulltextBatchIndexHandler, VectorBatchIndexHandler
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.domain.shared.queue import JobQueue, JobQueues
from searchsync.util.di.base import Provider
from searchsync.util.di.scope import Scope


class QueueProvider(Provider):
    """Provides the named job queues and the batch-index handlers."""

    @provide(scope=Scope.APP)
    def get_queues(self, repo: JobRepository, config: Config) -> JobQueues:
        names = (config.queue.fulltext_queue, config.queue.vector_queue)
        return JobQueues(queues={name: JobQueue(name=name, repo=repo) for name in names})

    # Handlers are built per unit of work so they see a fresh indexer
    fulltext_handler = provide(FulltextBatchIndexHandler, scope=Scope.UOW)
    vector_handler = provide(VectorBatchIndexHandler, scope=Scope.UOW)
