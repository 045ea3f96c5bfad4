"""Data models for the relationship graph.

Pydantic models for typed entities, relationships, queries and the
derived views built on top of the graph. Snapshots use camelCase keys.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    JsonValue,
    SerializeAsAny,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class EntityType(str, Enum):
    FILE = "File"
    FUNCTION = "Function"
    CLASS = "Class"
    AGENT = "Agent"
    TASK = "Task"
    CONVERSATION = "Conversation"
    MODULE = "Module"
    COMPONENT = "Component"
    ERROR = "Error"
    SOLUTION = "Solution"


class RelationType(str, Enum):
    # File relationships
    IMPORTS = "IMPORTS"
    EXPORTS = "EXPORTS"
    DEPENDS_ON = "DEPENDS_ON"

    # Code relationships
    CALLS = "CALLS"
    IMPLEMENTS = "IMPLEMENTS"
    EXTENDS = "EXTENDS"
    USES = "USES"

    # Agent relationships
    MODIFIED_BY = "MODIFIED_BY"
    CREATED_BY = "CREATED_BY"
    ANALYZED_BY = "ANALYZED_BY"
    EXECUTED_BY = "EXECUTED_BY"

    # Task relationships
    PARENT_OF = "PARENT_OF"
    BLOCKS = "BLOCKS"
    RELATED_TO = "RELATED_TO"
    SOLVED_BY = "SOLVED_BY"

    # Conversation relationships
    DISCUSSES = "DISCUSSES"
    REFERENCES = "REFERENCES"
    RESULTED_IN = "RESULTED_IN"

    # Testing relationships
    TESTED_BY = "TESTED_BY"
    TESTS = "TESTS"


class CamelModel(BaseModel):
    """Base model that serializes with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Entity(CamelModel):
    """Represents a node in the relationship graph.

    Concrete kinds subclass this and pin ``type``; the base class is
    usable directly for kinds without extra fields.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: ClassVar[EntityType | None] = None

    id: str = Field(..., description="Stable unique identifier (e.g. 'File:src/app.py')")
    type: EntityType = Field(..., description="Kind of entity")
    name: str = Field(..., description="Human-readable name")
    description: str | None = Field(None, description="Optional free-text description")
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    metadata: dict[str, JsonValue] = Field(
        default_factory=dict, description="Open extension data"
    )

    @model_validator(mode="before")
    @classmethod
    def _default_type(cls, data: Any) -> Any:
        if cls.entity_type is not None and isinstance(data, dict):
            if "type" not in data:
                data = {**data, "type": cls.entity_type}
        return data

    @model_validator(mode="after")
    def _check_type(self) -> "Entity":
        if self.entity_type is not None and self.type != self.entity_type:
            raise ValueError(
                f"{type(self).__name__} requires type {self.entity_type.value}, "
                f"got {self.type.value}"
            )
        return self


class FileEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.FILE

    path: str
    language: str | None = None
    hash: str | None = None
    size: int | None = None
    lines: int | None = None


class FunctionEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.FUNCTION

    file_path: str
    start_line: int
    end_line: int
    signature: str = ""
    parameters: list[str] = Field(default_factory=list)
    return_type: str | None = None


class ClassEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.CLASS

    file_path: str
    start_line: int
    end_line: int
    methods: list[str] = Field(default_factory=list)
    properties: list[str] = Field(default_factory=list)


class AgentEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.AGENT

    agent_id: str
    capabilities: list[str] = Field(default_factory=list)
    success_rate: float | None = None
    execution_count: int = 0
    last_executed: UtcDatetime | None = None


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.TASK

    task_type: str
    status: TaskStatus = TaskStatus.PENDING
    priority: int | None = None
    estimated_duration: float | None = None
    actual_duration: float | None = None


class ConversationEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.CONVERSATION

    conversation_id: str
    agent_name: str | None = None
    message_count: int = 0
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)


class ModuleEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.MODULE

    module_name: str
    version: str | None = None
    exports: list[str] = Field(default_factory=list)


class ComponentEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.COMPONENT

    file_path: str | None = None
    framework: str | None = None


class ErrorEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.ERROR

    error_type: str
    message: str
    stack_trace: str | None = None
    severity: Literal["low", "medium", "high", "critical"] = "medium"


class SolutionEntity(Entity):
    entity_type: ClassVar[EntityType] = EntityType.SOLUTION

    approach: str
    effectiveness: float | None = None
    applied_count: int = 0


ENTITY_MODELS: dict[EntityType, type[Entity]] = {
    model.entity_type: model
    for model in (
        FileEntity,
        FunctionEntity,
        ClassEntity,
        AgentEntity,
        TaskEntity,
        ConversationEntity,
        ModuleEntity,
        ComponentEntity,
        ErrorEntity,
        SolutionEntity,
    )
}


def entity_from_dict(data: dict[str, Any]) -> Entity:
    """Validate a raw mapping into the entity subclass named by its type.

    Args:
        data: Entity fields in snake_case or camelCase.

    Returns:
        The concrete Entity instance.

    Raises:
        pydantic.ValidationError: If fields are missing or malformed.
        ValueError: If the type is not a known EntityType.
    """
    model = ENTITY_MODELS[EntityType(data.get("type"))]
    return model.model_validate(data)


def create_entity_id(entity_type: EntityType, *parts: str) -> str:
    """Build an entity id such as ``File:src/app.py``."""
    return ":".join([entity_type.value, *parts])


def create_relationship_id() -> str:
    return f"rel:{uuid.uuid4()}"


class Relationship(CamelModel):
    """Represents a directed edge in the relationship graph."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=create_relationship_id)
    type: RelationType = Field(..., description="Kind of relationship")
    source: str = Field(..., description="ID of the source entity")
    target: str = Field(..., description="ID of the target entity")
    created_at: UtcDatetime = Field(default_factory=utcnow)
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    weight: float | None = Field(
        None, description="Optional weight (e.g. call frequency)"
    )


Direction = Literal["in", "out", "both"]


class GraphQuery(CamelModel):
    """Filter, sort and paginate entities.

    ``filters`` maps a field name to a value (equality) or to an operator
    dict such as ``{"$gte": 5, "$lt": 10}``. All conditions must hold.
    """

    entity_type: EntityType | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    order_by: str | None = None
    order_direction: Literal["asc", "desc"] = "asc"
    offset: int = Field(0, ge=0)
    limit: int | None = Field(None, ge=0)


class NodeDegree(CamelModel):
    id: str
    degree: int


class GraphStats(CamelModel):
    """Statistics about the current state of the relationship graph."""

    node_count: int
    edge_count: int
    entity_counts: dict[str, int] = Field(default_factory=dict)
    relationship_counts: dict[str, int] = Field(default_factory=dict)
    avg_degree: float = 0.0
    densest_nodes: list[NodeDegree] = Field(default_factory=list)
    last_updated: UtcDatetime = Field(default_factory=utcnow)


class FileContext(BaseModel):
    """Everything the graph knows about one file."""

    file: FileEntity | None = None
    dependencies: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    dependents: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    functions: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    modified_by: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    tests: list[SerializeAsAny[Entity]] = Field(default_factory=list)


class AgentHistory(BaseModel):
    """Execution history of one agent."""

    agent: AgentEntity | None = None
    tasks: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    files_modified: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    errors_encountered: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    solutions_applied: list[SerializeAsAny[Entity]] = Field(default_factory=list)


class GraphEventType(str, Enum):
    ENTITY_ADDED = "entity_added"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_REMOVED = "entity_removed"
    RELATIONSHIP_ADDED = "relationship_added"
    RELATIONSHIP_REMOVED = "relationship_removed"
    GRAPH_CLEARED = "graph_cleared"


class GraphEvent(BaseModel):
    """Notification delivered to observers after a mutation commits."""

    type: GraphEventType
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    entity_id: str | None = None
    relationship_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
