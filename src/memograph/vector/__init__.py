"""Similarity index and embedding providers."""

from memograph.vector.embeddings import (
    CachedEmbeddingProvider,
    EmbeddingCache,
    EmbeddingProvider,
    HashEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
)
from memograph.vector.store import (
    VectorRecord,
    VectorSearchResult,
    VectorStore,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    normalize_vector,
)

__all__ = [
    "CachedEmbeddingProvider",
    "EmbeddingCache",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VectorRecord",
    "VectorSearchResult",
    "VectorStore",
    "cosine_similarity",
    "create_embedding_provider",
    "dot_product",
    "euclidean_distance",
    "normalize_vector",
]
