"""Relationship graph, graph persistence and impact analysis."""

from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.impact import (
    ChangeOperation,
    ImpactAnalyzer,
    ImpactOptions,
    ImpactReport,
    RiskLevel,
)
from memograph.knowledge.models import (
    AgentEntity,
    ClassEntity,
    ComponentEntity,
    ConversationEntity,
    Entity,
    EntityType,
    ErrorEntity,
    FileEntity,
    FunctionEntity,
    GraphEvent,
    GraphEventType,
    GraphQuery,
    GraphStats,
    ModuleEntity,
    Relationship,
    RelationType,
    SolutionEntity,
    TaskEntity,
    TaskStatus,
    create_entity_id,
    entity_from_dict,
)
from memograph.knowledge.persistence import GraphPersistenceManager

__all__ = [
    "AgentEntity",
    "ChangeOperation",
    "ClassEntity",
    "ComponentEntity",
    "ConversationEntity",
    "Entity",
    "EntityType",
    "ErrorEntity",
    "FileEntity",
    "FunctionEntity",
    "GraphEvent",
    "GraphEventType",
    "GraphPersistenceManager",
    "GraphQuery",
    "GraphStats",
    "ImpactAnalyzer",
    "ImpactOptions",
    "ImpactReport",
    "KnowledgeGraph",
    "ModuleEntity",
    "RelationType",
    "Relationship",
    "RiskLevel",
    "SolutionEntity",
    "TaskEntity",
    "TaskStatus",
    "create_entity_id",
    "entity_from_dict",
]
