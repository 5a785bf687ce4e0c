from searchsync.infrastructure.queue.di import QueueProvider
from searchsync.infrastructure.queue.worker import Worker, WorkerPool

__all__ = ["QueueProvider", "Worker", "WorkerPool"]
