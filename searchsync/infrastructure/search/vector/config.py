"""Configuration for the ChromaDB + sentence-transformers vector strategy."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel


class EmbeddingModel(StrEnum):
    """Supported embedding models from sentence-transformers."""

    # Lightweight, fast models
    MINILM_L6 = "all-MiniLM-L6-v2"
    MINILM_L12 = "all-MiniLM-L12-v2"

    # Higher quality, multilingual
    MPNET_BASE = "all-mpnet-base-v2"
    MULTILINGUAL_MINILM = "paraphrase-multilingual-MiniLM-L12-v2"


class VectorConfig(BaseModel):
    """Vector strategy settings.

    persist_dir=None stores the collection under SEARCHSYNC_DATA_DIR/vectors.
    """

    persist_dir: Path | None = None
    collection: str = "search-records"
    model: EmbeddingModel = EmbeddingModel.MINILM_L6
    device: str | None = None  # None lets sentence-transformers pick
