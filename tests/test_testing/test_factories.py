"""Tests for the test factories."""

from memograph.knowledge.models import EntityType, RelationType
from memograph.memory.models import MessageRole
from memograph.testing import (
    make_agent_entity,
    make_conversation_memory,
    make_file_entity,
    make_function_entity,
    make_relationship,
)


class TestFactories:
    def test_file_entity_id_follows_path(self):
        entity = make_file_entity(path="lib/core.py")
        assert entity.id == "File:lib/core.py"
        assert entity.name == "core.py"
        assert entity.type == EntityType.FILE

    def test_function_entity(self):
        entity = make_function_entity(name="run", file_path="a.py")
        assert entity.id == "Function:a.py:run"
        assert entity.start_line == 1

    def test_agent_entity(self):
        entity = make_agent_entity()
        assert entity.id == "Agent:coder"

    def test_overrides_win(self):
        entity = make_file_entity(id="custom", language="go")
        assert entity.id == "custom"
        assert entity.language == "go"

    def test_relationship_defaults(self):
        rel = make_relationship()
        assert rel.type == RelationType.DEPENDS_ON
        assert rel.source == "Function:src/app.py:handler"
        assert rel.target == "File:src/app.py"

    def test_conversation_memory(self):
        memory = make_conversation_memory(role=MessageRole.ASSISTANT)
        assert memory.conversation_id == "conv-1"
        assert memory.role is MessageRole.ASSISTANT
