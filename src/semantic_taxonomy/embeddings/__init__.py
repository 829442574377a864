"""
Embeddings Package

Provider adapter turning text into fixed-dimension vectors.
"""

from .embedder import Embedder, EmbeddingError, EmbeddingRateLimitError, TaskType

__all__ = [
    "Embedder",
    "EmbeddingError",
    "EmbeddingRateLimitError",
    "TaskType",
]
