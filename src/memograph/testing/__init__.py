"""Shared test utilities, fixtures, and factories."""

from memograph.testing.factories import (
    make_agent_entity,
    make_conversation_memory,
    make_file_entity,
    make_function_entity,
    make_relationship,
)
from memograph.testing.fixtures import (
    create_mock_embedding_provider,
    create_sample_graph,
)

__all__ = [
    "create_mock_embedding_provider",
    "create_sample_graph",
    "make_agent_entity",
    "make_conversation_memory",
    "make_file_entity",
    "make_function_entity",
    "make_relationship",
]
