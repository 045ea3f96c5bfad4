"""Factory functions for creating test instances of core models."""

from memograph.knowledge.models import (
    AgentEntity,
    FileEntity,
    FunctionEntity,
    Relationship,
    RelationType,
)
from memograph.memory.models import ConversationMemory, MessageRole


def make_file_entity(**overrides) -> FileEntity:
    """Create a FileEntity with sensible defaults.

    The id defaults to ``File:<path>``.

    Args:
        **overrides: Fields to override on the FileEntity.

    Returns:
        A valid FileEntity instance.
    """
    path = overrides.get("path", "src/app.py")
    defaults = {
        "id": f"File:{path}",
        "name": path.rsplit("/", 1)[-1],
        "path": path,
        "language": "python",
    }
    defaults.update(overrides)
    return FileEntity(**defaults)


def make_function_entity(**overrides) -> FunctionEntity:
    """Create a FunctionEntity with sensible defaults.

    Args:
        **overrides: Fields to override on the FunctionEntity.

    Returns:
        A valid FunctionEntity instance.
    """
    name = overrides.get("name", "handler")
    file_path = overrides.get("file_path", "src/app.py")
    defaults = {
        "id": f"Function:{file_path}:{name}",
        "name": name,
        "file_path": file_path,
        "start_line": 1,
        "end_line": 10,
    }
    defaults.update(overrides)
    return FunctionEntity(**defaults)


def make_agent_entity(**overrides) -> AgentEntity:
    """Create an AgentEntity with sensible defaults.

    Args:
        **overrides: Fields to override on the AgentEntity.

    Returns:
        A valid AgentEntity instance.
    """
    name = overrides.get("name", "coder")
    defaults = {"id": f"Agent:{name}", "name": name, "agent_id": name}
    defaults.update(overrides)
    return AgentEntity(**defaults)


def make_relationship(**overrides) -> Relationship:
    """Create a Relationship with sensible defaults.

    Args:
        **overrides: Fields to override on the Relationship.

    Returns:
        A valid Relationship instance.
    """
    defaults = {
        "type": RelationType.DEPENDS_ON,
        "source": "Function:src/app.py:handler",
        "target": "File:src/app.py",
    }
    defaults.update(overrides)
    return Relationship(**defaults)


def make_conversation_memory(**overrides) -> ConversationMemory:
    """Create a ConversationMemory with sensible defaults.

    Args:
        **overrides: Fields to override on the ConversationMemory.

    Returns:
        A valid ConversationMemory instance.
    """
    defaults = {
        "conversation_id": "conv-1",
        "role": MessageRole.USER,
        "content": "Test memory content",
    }
    defaults.update(overrides)
    return ConversationMemory(**defaults)
