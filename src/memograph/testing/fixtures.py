"""Fixtures for testing against memograph interfaces."""

from unittest.mock import MagicMock

from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.models import RelationType
from memograph.testing.factories import (
    make_agent_entity,
    make_file_entity,
    make_function_entity,
    make_relationship,
)
from memograph.vector.embeddings import HashEmbeddingProvider


def create_mock_embedding_provider(
    dimension: int = 8,
    embedding: list[float] | None = None,
) -> MagicMock:
    """Create a mock EmbeddingProvider with working embed()/embed_batch().

    Args:
        dimension: Reported and produced vector size.
        embedding: Fixed vector to return for every text. When omitted,
            vectors come from a HashEmbeddingProvider, so equal texts embed
            equally.

    Returns:
        MagicMock with EmbeddingProvider interface.
    """
    hasher = HashEmbeddingProvider(dimension)

    def _embed(text: str) -> list[float]:
        return list(embedding) if embedding is not None else hasher.embed(text)

    mock = MagicMock()
    mock.dimension = dimension
    mock.max_input_length = 10000
    mock.name = "Mock Embeddings"
    mock.embed.side_effect = _embed
    mock.embed_batch.side_effect = lambda texts: [_embed(t) for t in texts]
    return mock


def create_sample_graph(project_id: str = "test-project") -> KnowledgeGraph:
    """Create a small populated graph.

    Contents: files ``src/app.py`` and ``src/utils.py`` (app IMPORTS
    utils), function ``handler`` in app.py DEPENDS_ON app.py, and agent
    ``coder`` linked to app.py by MODIFIED_BY (agent to file, the
    direction file context and agent history read).

    Args:
        project_id: Project id of the new graph.

    Returns:
        A real KnowledgeGraph instance.
    """
    graph = KnowledgeGraph(project_id)
    app = make_file_entity(path="src/app.py")
    utils = make_file_entity(path="src/utils.py")
    handler = make_function_entity(name="handler", file_path="src/app.py")
    agent = make_agent_entity(name="coder")
    for entity in (app, utils, handler, agent):
        graph.add_entity(entity)

    graph.add_relationship(
        make_relationship(type=RelationType.IMPORTS, source=app.id, target=utils.id)
    )
    graph.add_relationship(
        make_relationship(type=RelationType.DEPENDS_ON, source=handler.id, target=app.id)
    )
    graph.add_relationship(
        make_relationship(type=RelationType.MODIFIED_BY, source=agent.id, target=app.id)
    )
    return graph
