"""Composition root wiring graphs, vectors, embeddings and memory together.

Construct one MemoryEngine at startup and pass it to whatever needs
graph or memory access. Nothing in the package keeps global state.
"""

import logging
from pathlib import Path
from typing import Any

from memograph.config import MemoryConfig
from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.impact import ImpactAnalyzer
from memograph.knowledge.persistence import GraphPersistenceManager
from memograph.memory.conversation import ConversationMemoryManager
from memograph.vector.embeddings import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
)
from memograph.vector.store import VectorStore

logger = logging.getLogger(__name__)


class MemoryEngine:
    """Owns every long-lived component of the memory engine.

    Args:
        config: Engine configuration. Defaults to MemoryConfig().
        embedding_provider: Provider to use instead of the configured one.
            The vector store takes its dimension from this provider.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> None:
        self.config = config or MemoryConfig()
        self._owns_provider = embedding_provider is None
        self._base_provider = embedding_provider or create_embedding_provider(
            self.config.embedding
        )
        self.embeddings = CachedEmbeddingProvider(
            self._base_provider,
            cache_size=self.config.embedding.cache_size,
            cache_ttl=self.config.embedding.cache_ttl,
        )

        vectors_config = self.config.vectors
        if vectors_config.dimension != self.embeddings.dimension:
            logger.debug(
                "Vector store dimension set to %d to match %s",
                self.embeddings.dimension,
                self.embeddings.name,
            )
            vectors_config = vectors_config.model_copy(
                update={"dimension": self.embeddings.dimension}
            )

        self.graphs = GraphPersistenceManager(self.config.graph)
        self.vectors = VectorStore(vectors_config)
        self.memory = ConversationMemoryManager(self.vectors, self.embeddings)
        self.memory.initialize()

    @staticmethod
    def project_id(project_path: str | Path) -> str:
        """Stable id for a project directory, independent of how the path is spelled."""
        resolved = Path(project_path).expanduser().resolve()
        return GraphPersistenceManager.generate_project_id(resolved)

    def graph(self, project_path: str | Path) -> KnowledgeGraph:
        return self.graphs.get_or_create(self.project_id(project_path))

    def impact(self, project_path: str | Path) -> ImpactAnalyzer:
        return ImpactAnalyzer(self.graph(project_path))

    def close(self) -> None:
        """Flush graphs and vectors, then stop every background timer."""
        try:
            self.graphs.cleanup()
        finally:
            try:
                self.memory.cleanup()
            finally:
                if self._owns_provider and isinstance(
                    self._base_provider, OpenAIEmbeddingProvider
                ):
                    self._base_provider.close()

    def __enter__(self) -> "MemoryEngine":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
