"""Typed entity/relationship multigraph.

Entities live in an id-keyed table; relationships live in a flat edge
table with per-entity out/in adjacency lists kept in insertion order.
A reentrant lock guards every public method, so a snapshot taken by a
background saver never observes a half-applied mutation.
"""

import logging
import threading
from collections import deque
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Iterable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from memograph.errors import (
    DuplicateIdError,
    MemographError,
    NotFoundError,
    ValidationError,
)
from memograph.knowledge.models import (
    ENTITY_MODELS,
    AgentEntity,
    AgentHistory,
    Direction,
    Entity,
    EntityType,
    ErrorEntity,
    FileContext,
    FileEntity,
    GraphEvent,
    GraphEventType,
    GraphQuery,
    GraphStats,
    NodeDegree,
    Relationship,
    RelationType,
    SolutionEntity,
    UtcDatetime,
    entity_from_dict,
    utcnow,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[GraphEvent], None]

_DEPENDENCY_TYPES = frozenset({RelationType.DEPENDS_ON, RelationType.IMPORTS})
_OPERATORS = frozenset({"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin"})
_MISSING = object()
_DATETIME = TypeAdapter(UtcDatetime)


@lru_cache(maxsize=None)
def _field_names(model: type[Entity]) -> dict[str, str]:
    """Map field names and their camelCase aliases to field names."""
    names: dict[str, str] = {}
    for name, info in model.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op not in _OPERATORS:
        raise ValidationError(f"Unknown filter operator: {op}")
    if op == "$eq":
        return actual == expected
    if op == "$ne":
        return actual != expected
    if op in ("$in", "$nin"):
        if not isinstance(expected, (list, tuple, set, frozenset)):
            raise ValidationError(f"Operator {op} requires a list, got {expected!r}")
        found = actual in expected
        return found if op == "$in" else not found
    if actual is _MISSING or actual is None:
        return False
    try:
        if op == "$gt":
            return actual > expected
        if op == "$gte":
            return actual >= expected
        if op == "$lt":
            return actual < expected
        if op == "$lte":
            return actual <= expected
    except TypeError as exc:
        raise ValidationError(
            f"Cannot compare {actual!r} with {expected!r} using {op}"
        ) from exc
    raise ValidationError(f"Unknown filter operator: {op}")


class KnowledgeGraph:
    """Directed multigraph of typed entities and relationships.

    Parallel edges and self-loops are allowed. Removing an entity drops
    every incident relationship.

    Args:
        project_id: Stable identifier of the project this graph describes.
    """

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        self.created_at = utcnow()
        self._entities: dict[str, Entity] = {}
        self._relationships: dict[str, Relationship] = {}
        self._out: dict[str, list[str]] = {}
        self._in: dict[str, list[str]] = {}
        self._lock = threading.RLock()
        self._listeners: dict[GraphEventType, list[EventHandler]] = {}

    @property
    def lock(self) -> threading.RLock:
        """The lock guarding graph state, for callers batching mutations."""
        return self._lock

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> None:
        """Insert an entity.

        A base ``Entity`` is converted to the subclass its type names, so
        every stored node can be restored from a snapshot.

        Args:
            entity: The entity to add.

        Raises:
            DuplicateIdError: If an entity with the same id exists.
            ValidationError: If the entity lacks fields its type requires.
        """
        model = ENTITY_MODELS[entity.type]
        if not isinstance(entity, model):
            try:
                entity = model.model_validate(entity.model_dump())
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Entity {entity.id} is not a valid {entity.type.value}: {exc}"
                ) from exc

        with self._lock:
            if entity.id in self._entities:
                raise DuplicateIdError("Entity", entity.id)
            self._entities[entity.id] = entity
            self._out[entity.id] = []
            self._in[entity.id] = []
        logger.debug("Added %s entity %s", entity.type.value, entity.id)
        self._emit(GraphEvent(type=GraphEventType.ENTITY_ADDED, entity_id=entity.id))

    def update_entity(self, entity_id: str, updates: dict[str, Any]) -> Entity:
        """Merge fields into an existing entity and refresh ``updated_at``.

        Fields not named in ``updates`` are kept. A ``metadata`` update is
        merged key by key rather than replacing the whole map.

        Args:
            entity_id: Entity to update.
            updates: Field values keyed by snake_case or camelCase name.

        Returns:
            The updated entity.

        Raises:
            NotFoundError: If the entity does not exist.
            ValidationError: If an update names an unknown field, tries to
                change ``id`` or ``type``, or fails validation.
        """
        with self._lock:
            current = self._entities.get(entity_id)
            if current is None:
                raise NotFoundError("Entity", entity_id)

            model = type(current)
            names = _field_names(model)
            merged = current.model_dump()
            for key, value in updates.items():
                field = names.get(key)
                if field is None:
                    raise ValidationError(
                        f"Unknown field '{key}' for {model.__name__}"
                    )
                if field in ("id", "type") and value != merged[field]:
                    raise ValidationError(f"Field '{field}' cannot be changed")
                if field == "metadata":
                    if not isinstance(value, dict):
                        raise ValidationError("metadata update must be a mapping")
                    merged["metadata"] = {**merged["metadata"], **value}
                else:
                    merged[field] = value
            merged["updated_at"] = utcnow()

            try:
                updated = model.model_validate(merged)
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Invalid update for entity {entity_id}: {exc}"
                ) from exc
            self._entities[entity_id] = updated

        self._emit(
            GraphEvent(
                type=GraphEventType.ENTITY_UPDATED,
                entity_id=entity_id,
                details={"fields": sorted(updates)},
            )
        )
        return updated

    def get_entity(self, entity_id: str) -> Entity | None:
        with self._lock:
            return self._entities.get(entity_id)

    def has_entity(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._entities

    def remove_entity(self, entity_id: str) -> None:
        """Delete an entity together with every incident relationship.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        with self._lock:
            if entity_id not in self._entities:
                raise NotFoundError("Entity", entity_id)
            incident = dict.fromkeys(self._out[entity_id] + self._in[entity_id])
            for rel_id in incident:
                self._detach(rel_id)
            del self._entities[entity_id]
            del self._out[entity_id]
            del self._in[entity_id]
        logger.debug(
            "Removed entity %s and %d relationships", entity_id, len(incident)
        )
        self._emit(
            GraphEvent(
                type=GraphEventType.ENTITY_REMOVED,
                entity_id=entity_id,
                details={"relationships": list(incident)},
            )
        )

    def find_entities(self, query: GraphQuery | None = None) -> list[Entity]:
        """Return entities matching a type filter and field predicates.

        Args:
            query: Filter, ordering and pagination. None returns everything.

        Returns:
            Matching entities. Without ``order_by`` the order is unspecified.

        Raises:
            ValidationError: If a filter is malformed or values cannot be
                compared.
        """
        query = query or GraphQuery()
        with self._lock:
            results = [
                entity
                for entity in self._entities.values()
                if (query.entity_type is None or entity.type == query.entity_type)
                and self._matches(entity, query.filters)
            ]

        if query.order_by:
            key = query.order_by
            present = [e for e in results if self._lookup(e, key) not in (_MISSING, None)]
            absent = [e for e in results if self._lookup(e, key) in (_MISSING, None)]
            try:
                present.sort(
                    key=lambda e: self._lookup(e, key),
                    reverse=query.order_direction == "desc",
                )
            except TypeError as exc:
                raise ValidationError(
                    f"Values of '{key}' are not mutually comparable"
                ) from exc
            results = present + absent

        end = None if query.limit is None else query.offset + query.limit
        return results[query.offset : end]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def add_relationship(self, relationship: Relationship) -> None:
        """Insert a directed edge. Parallel edges and self-loops are allowed.

        Raises:
            NotFoundError: If either endpoint does not exist.
            DuplicateIdError: If the relationship id is already used.
        """
        with self._lock:
            if relationship.source not in self._entities:
                raise NotFoundError("Source entity", relationship.source)
            if relationship.target not in self._entities:
                raise NotFoundError("Target entity", relationship.target)
            if relationship.id in self._relationships:
                raise DuplicateIdError("Relationship", relationship.id)
            self._relationships[relationship.id] = relationship
            self._out[relationship.source].append(relationship.id)
            self._in[relationship.target].append(relationship.id)
        logger.debug(
            "Added %s %s -> %s",
            relationship.type.value,
            relationship.source,
            relationship.target,
        )
        self._emit(
            GraphEvent(
                type=GraphEventType.RELATIONSHIP_ADDED,
                relationship_id=relationship.id,
            )
        )

    def remove_relationship(self, relationship_id: str) -> None:
        """Delete one edge by id.

        Raises:
            NotFoundError: If no edge has this id.
        """
        with self._lock:
            if relationship_id not in self._relationships:
                raise NotFoundError("Relationship", relationship_id)
            self._detach(relationship_id)
        self._emit(
            GraphEvent(
                type=GraphEventType.RELATIONSHIP_REMOVED,
                relationship_id=relationship_id,
            )
        )

    def get_relationship(self, relationship_id: str) -> Relationship | None:
        with self._lock:
            return self._relationships.get(relationship_id)

    def get_relationships(
        self, entity_id: str, direction: Direction = "both"
    ) -> list[Relationship]:
        """List edges touching an entity, out-edges first.

        Raises:
            NotFoundError: If the entity does not exist.
            ValidationError: If ``direction`` is not in/out/both.
        """
        with self._lock:
            if entity_id not in self._entities:
                raise NotFoundError("Entity", entity_id)
            return [self._relationships[r] for r in self._edge_ids(entity_id, direction)]

    def find_relationships(
        self, relationship_type: RelationType | None = None
    ) -> list[Relationship]:
        with self._lock:
            return [
                rel
                for rel in self._relationships.values()
                if relationship_type is None or rel.type == relationship_type
            ]

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def find_path(
        self,
        source_id: str,
        target_id: str,
        max_depth: int = 10,
        relationship_types: Iterable[RelationType] | None = None,
    ) -> list[Entity] | None:
        """Shortest directed path by breadth-first search over out-edges.

        Out-edges are expanded in insertion order, so among equally short
        paths the one discovered first wins.

        Args:
            source_id: Start entity.
            target_id: Destination entity.
            max_depth: Maximum path length in edges.
            relationship_types: Only follow edges of these types.

        Returns:
            Entities from source to target inclusive, or None if the target
            is not reachable within ``max_depth`` edges.

        Raises:
            NotFoundError: If either endpoint does not exist.
            ValidationError: If ``max_depth`` is negative.
        """
        if max_depth < 0:
            raise ValidationError("max_depth must be >= 0")
        allowed = None if relationship_types is None else frozenset(relationship_types)

        with self._lock:
            for entity_id in (source_id, target_id):
                if entity_id not in self._entities:
                    raise NotFoundError("Entity", entity_id)

            parents: dict[str, str | None] = {source_id: None}
            queue: deque[tuple[str, int]] = deque([(source_id, 0)])
            found = source_id == target_id
            while queue and not found:
                node_id, depth = queue.popleft()
                if depth >= max_depth:
                    continue
                for rel_id in self._out[node_id]:
                    rel = self._relationships[rel_id]
                    if allowed is not None and rel.type not in allowed:
                        continue
                    if rel.target in parents:
                        continue
                    parents[rel.target] = node_id
                    if rel.target == target_id:
                        found = True
                        break
                    queue.append((rel.target, depth + 1))

            if not found:
                return None
            path: list[str] = []
            step: str | None = target_id
            while step is not None:
                path.append(step)
                step = parents[step]
            return [self._entities[node_id] for node_id in reversed(path)]

    def get_neighbors(
        self,
        entity_id: str,
        direction: Direction = "both",
        relationship_type: RelationType | None = None,
        depth: int = 1,
        limit: int = 100,
    ) -> list[Entity]:
        """Expand outward from an entity, level by level.

        Args:
            entity_id: Start entity (never part of the result).
            direction: Edge direction to follow.
            relationship_type: Only follow edges of this type.
            depth: Number of hops; 0 returns an empty list.
            limit: Maximum number of entities returned.

        Returns:
            Distinct neighbouring entities in discovery order.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        with self._lock:
            if entity_id not in self._entities:
                raise NotFoundError("Entity", entity_id)

            visited = {entity_id}
            results: list[Entity] = []
            if limit <= 0:
                return results
            frontier = [entity_id]
            for _ in range(max(depth, 0)):
                next_frontier: list[str] = []
                for node_id in frontier:
                    for rel_id in self._edge_ids(node_id, direction):
                        rel = self._relationships[rel_id]
                        if relationship_type is not None and rel.type != relationship_type:
                            continue
                        other = rel.target if rel.source == node_id else rel.source
                        if other in visited:
                            continue
                        visited.add(other)
                        results.append(self._entities[other])
                        if len(results) >= limit:
                            return results
                        next_frontier.append(other)
                if not next_frontier:
                    break
                frontier = next_frontier
            return results

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def get_file_context(self, file_path: str) -> FileContext:
        """Collect a file's dependencies, dependents, functions and tests."""
        with self._lock:
            matches = self.find_entities(
                GraphQuery(
                    entity_type=EntityType.FILE, filters={"path": file_path}, limit=1
                )
            )
            if not matches or not isinstance(matches[0], FileEntity):
                return FileContext()
            file = matches[0]
            context = FileContext(file=file)

            for rel in self.get_relationships(file.id, "out"):
                if rel.type in _DEPENDENCY_TYPES:
                    context.dependencies.append(self._entities[rel.target])

            for rel in self.get_relationships(file.id, "in"):
                source = self._entities[rel.source]
                if rel.type in _DEPENDENCY_TYPES:
                    context.dependents.append(source)
                elif rel.type == RelationType.MODIFIED_BY:
                    context.modified_by.append(source)
                elif rel.type == RelationType.TESTS:
                    context.tests.append(source)

            context.functions.extend(
                self.find_entities(
                    GraphQuery(
                        entity_type=EntityType.FUNCTION,
                        filters={"file_path": file_path},
                    )
                )
            )
            return context

    def get_agent_history(
        self, agent_name: str, task_type: str | None = None
    ) -> AgentHistory:
        """Collect what an agent executed, modified, hit and solved."""
        with self._lock:
            matches = self.find_entities(
                GraphQuery(
                    entity_type=EntityType.AGENT, filters={"name": agent_name}, limit=1
                )
            )
            if not matches or not isinstance(matches[0], AgentEntity):
                return AgentHistory()
            agent = matches[0]
            history = AgentHistory(agent=agent)

            for rel in self.get_relationships(agent.id, "out"):
                target = self._entities[rel.target]
                if rel.type == RelationType.EXECUTED_BY:
                    if task_type is None or getattr(target, "task_type", None) == task_type:
                        history.tasks.append(target)
                elif rel.type == RelationType.MODIFIED_BY:
                    history.files_modified.append(target)
                elif rel.type == RelationType.SOLVED_BY:
                    if isinstance(target, ErrorEntity):
                        history.errors_encountered.append(target)
                    elif isinstance(target, SolutionEntity):
                        history.solutions_applied.append(target)
            return history

    def get_stats(self, top_n: int = 10) -> GraphStats:
        """Count entities and relationships by type and rank by degree.

        Args:
            top_n: How many of the highest-degree entities to report.

        Returns:
            GraphStats for the current graph.
        """
        with self._lock:
            entity_counts: dict[str, int] = {}
            for entity in self._entities.values():
                entity_counts[entity.type.value] = entity_counts.get(entity.type.value, 0) + 1

            relationship_counts: dict[str, int] = {}
            for rel in self._relationships.values():
                relationship_counts[rel.type.value] = (
                    relationship_counts.get(rel.type.value, 0) + 1
                )

            degrees = [
                NodeDegree(id=node_id, degree=len(self._out[node_id]) + len(self._in[node_id]))
                for node_id in self._entities
            ]
            avg_degree = (
                sum(d.degree for d in degrees) / len(degrees) if degrees else 0.0
            )
            densest = sorted(degrees, key=lambda d: d.degree, reverse=True)[:top_n]

            return GraphStats(
                node_count=len(self._entities),
                edge_count=len(self._relationships),
                entity_counts=entity_counts,
                relationship_counts=relationship_counts,
                avg_degree=avg_degree,
                densest_nodes=densest,
            )

    # ------------------------------------------------------------------
    # Lifecycle and serialization
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Remove every entity and relationship."""
        with self._lock:
            self._entities.clear()
            self._relationships.clear()
            self._out.clear()
            self._in.clear()
        self._emit(GraphEvent(type=GraphEventType.GRAPH_CLEARED))

    def to_json(self) -> dict[str, Any]:
        """Snapshot the graph as a JSON-compatible dict."""
        with self._lock:
            return {
                "projectId": self.project_id,
                "createdAt": self.created_at.isoformat(),
                "nodes": [
                    e.model_dump(mode="json", by_alias=True)
                    for e in self._entities.values()
                ],
                "edges": [
                    r.model_dump(mode="json", by_alias=True)
                    for r in self._relationships.values()
                ],
                "stats": self.get_stats().model_dump(mode="json", by_alias=True),
            }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "KnowledgeGraph":
        """Rebuild a graph from a ``to_json`` snapshot.

        Raises:
            ValidationError: If the snapshot is structurally invalid.
        """
        try:
            graph = cls(data["projectId"])
            if data.get("createdAt"):
                graph.created_at = _DATETIME.validate_python(data["createdAt"])
            for node in data["nodes"]:
                graph.add_entity(entity_from_dict(node))
            for edge in data["edges"]:
                graph.add_relationship(Relationship.model_validate(edge))
        except (AttributeError, KeyError, TypeError, ValueError, MemographError) as exc:
            raise ValidationError(f"Invalid graph snapshot: {exc}") from exc
        return graph

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, event_type: GraphEventType, handler: EventHandler) -> None:
        """Register a handler called synchronously after each matching mutation."""
        with self._lock:
            self._listeners.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: GraphEventType, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._listeners.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def _emit(self, event: GraphEvent) -> None:
        with self._lock:
            handlers = list(self._listeners.get(event.type, []))
        for handler in handlers:
            handler(event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _detach(self, relationship_id: str) -> None:
        rel = self._relationships.pop(relationship_id)
        self._out[rel.source].remove(relationship_id)
        self._in[rel.target].remove(relationship_id)

    def _edge_ids(self, entity_id: str, direction: Direction) -> list[str]:
        if direction == "out":
            return list(self._out[entity_id])
        if direction == "in":
            return list(self._in[entity_id])
        if direction == "both":
            # a self-loop sits in both lists but is one edge
            return list(dict.fromkeys(self._out[entity_id] + self._in[entity_id]))
        raise ValidationError(f"Invalid direction: {direction!r}")

    @staticmethod
    def _lookup(entity: Entity, key: str) -> Any:
        field = _field_names(type(entity)).get(key)
        if field is None:
            return entity.metadata.get(key, _MISSING)
        value = getattr(entity, field)
        # enums compare by their plain value in filters
        return value.value if isinstance(value, Enum) else value

    @classmethod
    def _matches(cls, entity: Entity, filters: dict[str, Any]) -> bool:
        for key, condition in filters.items():
            actual = cls._lookup(entity, key)
            if isinstance(condition, dict):
                if not condition:
                    raise ValidationError(f"Empty operator map for '{key}'")
                for op, expected in condition.items():
                    if not _compare(op, actual, expected):
                        return False
            elif actual != condition:
                return False
        return True
