"""Index domain queue payloads."""

from searchsync.domain.index.event.reindex_job import ReindexJob

__all__ = ["ReindexJob"]
