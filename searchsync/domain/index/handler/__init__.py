"""Index domain job handlers."""

from searchsync.domain.index.handler.batch_index import (
    FulltextBatchIndexHandler,
    VectorBatchIndexHandler,
)

__all__ = ["FulltextBatchIndexHandler", "VectorBatchIndexHandler"]
