"""Tests for the MemoryEngine composition root."""

from unittest.mock import MagicMock

import pytest

from memograph.context import MemoryEngine
from memograph.knowledge.impact import ImpactAnalyzer
from memograph.testing import (
    create_mock_embedding_provider,
    make_conversation_memory,
    make_file_entity,
)
from memograph.vector.embeddings import CachedEmbeddingProvider, OpenAIEmbeddingProvider


@pytest.fixture
def engine(memory_config):
    engine = MemoryEngine(memory_config)
    yield engine
    engine.close()


class TestConstruction:
    def test_uses_configured_provider(self, engine):
        assert isinstance(engine.embeddings, CachedEmbeddingProvider)
        assert engine.embeddings.name == "Cached Simple Hash"
        assert engine.vectors.dimension == 16

    def test_vector_dimension_follows_injected_provider(self, memory_config):
        with MemoryEngine(
            memory_config, embedding_provider=create_mock_embedding_provider(dimension=4)
        ) as engine:
            assert engine.vectors.dimension == 4
            assert engine.memory.embeddings.dimension == 4

    def test_storage_lives_under_data_dir(self, engine, memory_config):
        assert engine.graphs.base_dir == memory_config.data_dir / "graphs"
        assert engine.vectors.config.persist_path == (
            memory_config.data_dir / "memory" / "vectors.json"
        )


class TestProjects:
    def test_project_id_normalizes_path(self, tmp_path):
        (tmp_path / "proj").mkdir()
        assert MemoryEngine.project_id(tmp_path / "proj") == MemoryEngine.project_id(
            tmp_path / "proj" / ".." / "proj"
        )

    def test_graph_is_cached_per_project(self, engine, tmp_path):
        assert engine.graph(tmp_path) is engine.graph(str(tmp_path))

    def test_impact_analyzer_wraps_project_graph(self, engine, tmp_path):
        analyzer = engine.impact(tmp_path)
        assert isinstance(analyzer, ImpactAnalyzer)
        assert analyzer.graph is engine.graph(tmp_path)


class TestLifecycle:
    def test_close_persists_graphs_and_memories(self, memory_config, tmp_path):
        with MemoryEngine(memory_config) as engine:
            engine.graph(tmp_path).add_entity(make_file_entity())
            memory_id = engine.memory.add_memory(make_conversation_memory())

        with MemoryEngine(memory_config) as reopened:
            assert reopened.graph(tmp_path).has_entity("File:src/app.py")
            history = reopened.memory.get_conversation_history("conv-1")
            assert [m.id for m in history] == [memory_id]

    def test_close_releases_owned_http_client(self, memory_config):
        config = memory_config.model_copy(
            update={
                "embedding": memory_config.embedding.model_copy(
                    update={"provider": "openai", "api_key": "sk-test"}
                )
            }
        )
        engine = MemoryEngine(config)
        assert isinstance(engine._base_provider, OpenAIEmbeddingProvider)
        engine._base_provider.client = MagicMock()
        engine.close()
        engine._base_provider.client.close.assert_called_once()

    def test_injected_provider_is_not_closed(self, memory_config):
        provider = create_mock_embedding_provider(dimension=8)
        MemoryEngine(memory_config, embedding_provider=provider).close()
        provider.close.assert_not_called()
