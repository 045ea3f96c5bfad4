"""Shared test configuration and fixtures."""

import pytest

from memograph.config import MemoryConfig, PersistenceConfig, VectorStoreConfig
from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.persistence import GraphPersistenceManager
from memograph.vector.store import VectorStore


@pytest.fixture
def graph() -> KnowledgeGraph:
    """Provide an empty graph."""
    return KnowledgeGraph("test-project")


@pytest.fixture
def persistence_config(tmp_path) -> PersistenceConfig:
    return PersistenceConfig(base_dir=tmp_path / "graphs", auto_save=False, max_backups=3)


@pytest.fixture
def manager(persistence_config):
    """Provide a persistence manager without background timers."""
    manager = GraphPersistenceManager(persistence_config)
    yield manager
    manager.cleanup()


@pytest.fixture
def vector_config(tmp_path) -> VectorStoreConfig:
    return VectorStoreConfig(
        persist_path=tmp_path / "memory" / "vectors.json",
        auto_save=False,
        dimension=8,
        max_vectors=100,
    )


@pytest.fixture
def store(vector_config) -> VectorStore:
    """Provide an 8-dimensional vector store without background timers."""
    return VectorStore(vector_config)


@pytest.fixture
def memory_config(tmp_path) -> MemoryConfig:
    """Provide an engine config rooted in tmp_path with timers disabled."""
    return MemoryConfig.model_validate(
        {
            "data_dir": tmp_path / "data",
            "graph": {"auto_save": False},
            "vectors": {"auto_save": False},
            "embedding": {"provider": "simple", "dimension": 16},
        }
    )
