"""Embedding adapter: remote embedder client and vector math."""

from codeatlas.engines.embedding.embedding_client import EmbeddingClient, EmbeddingDimensionError
from codeatlas.engines.embedding.similarity import clamp, cosine_similarity, mean_vector

__all__ = [
    "EmbeddingClient",
    "EmbeddingDimensionError",
    "clamp",
    "cosine_similarity",
    "mean_vector",
]
