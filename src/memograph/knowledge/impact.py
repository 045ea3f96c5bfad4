"""Change impact analysis over the relationship graph.

Answers "what breaks if this entity changes?" by walking dependency
edges in both directions, scoring the risk of the change and listing
the tests and untested code it touches. The graph is only read.
"""

import logging
from collections import deque
from enum import Enum

from pydantic import BaseModel, Field, SerializeAsAny

from memograph.errors import NotFoundError
from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.models import Direction, Entity, EntityType, RelationType

logger = logging.getLogger(__name__)

DEPENDENCY_EDGE_TYPES = frozenset(
    {
        RelationType.DEPENDS_ON,
        RelationType.IMPORTS,
        RelationType.USES,
        RelationType.CALLS,
    }
)

OPERATION_WEIGHTS = {"delete": 30, "move": 20, "modify": 10}
ENTITY_TYPE_WEIGHTS = {
    EntityType.MODULE: 20,
    EntityType.CLASS: 15,
    EntityType.FUNCTION: 10,
}
# (exclusive lower bound, points), checked in order
DEPENDENT_COUNT_WEIGHTS = ((20, 30), (10, 20), (5, 10))
DEPTH_WEIGHTS = ((3, 20), (2, 10))

MAX_CRITICAL_PATHS = 5
QUICK_CHECK_DOWNSTREAM_DEPTH = 3


class ChangeOperation(str, Enum):
    MODIFY = "modify"
    DELETE = "delete"
    MOVE = "move"


class RiskLevel(str, Enum):
    SAFE = "SAFE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        if score >= 70:
            return cls.CRITICAL
        if score >= 50:
            return cls.HIGH
        if score >= 30:
            return cls.MEDIUM
        if score >= 10:
            return cls.LOW
        return cls.SAFE


class ImpactOptions(BaseModel):
    """Tuning knobs for a full analysis."""

    max_depth: int = Field(5, ge=0, description="Traversal bound in hops")
    include_tests: bool = Field(True, description="Collect tests covering affected code")
    min_importance: int = Field(
        0, ge=0, description="Drop critical paths scoring below this"
    )


class AffectedEntity(BaseModel):
    """An entity reached by traversal, with its distance from the target."""

    entity: SerializeAsAny[Entity]
    depth: int
    path: list[str] = Field(
        default_factory=list, description="Entity ids from the target to this entity"
    )


class CriticalPath(BaseModel):
    path: list[SerializeAsAny[Entity]]
    importance: int


class ImpactReport(BaseModel):
    """Full result of an impact analysis."""

    target_entity: SerializeAsAny[Entity]
    operation: ChangeOperation

    directly_affected: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    direct_relationships: list[RelationType] = Field(default_factory=list)
    indirectly_affected: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    upstream: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    max_depth: int = 0

    risk_score: int = 0
    risk_level: RiskLevel = RiskLevel.SAFE
    risk_factors: list[str] = Field(default_factory=list)

    critical_paths: list[CriticalPath] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    affected_tests: list[SerializeAsAny[Entity]] = Field(default_factory=list)
    untested: list[SerializeAsAny[Entity]] = Field(default_factory=list)

    @property
    def total_affected(self) -> int:
        return len(self.directly_affected) + len(self.indirectly_affected)


class QuickCheckResult(BaseModel):
    affected: int
    risk_level: RiskLevel


class ImpactAnalyzer:
    """Read-only impact analysis for one graph.

    Args:
        graph: Graph to analyze. Never mutated.
    """

    def __init__(self, graph: KnowledgeGraph) -> None:
        self.graph = graph

    def analyze(
        self,
        entity_id: str,
        operation: ChangeOperation | str,
        options: ImpactOptions | None = None,
    ) -> ImpactReport:
        """Analyze the blast radius of changing an entity.

        Args:
            entity_id: Entity about to change.
            operation: modify, delete or move.
            options: Traversal and filtering options.

        Returns:
            The impact report.

        Raises:
            NotFoundError: If the entity does not exist.
            ValueError: If the operation is unknown.
        """
        operation = ChangeOperation(operation)
        options = options or ImpactOptions()

        # One consistent view even if another thread mutates the graph.
        with self.graph.lock:
            entity = self._require(entity_id)
            downstream = self._traverse(entity_id, options.max_depth, "in")
            upstream = self._traverse(entity_id, options.max_depth, "out")

            max_depth = max((d.depth for d in downstream), default=0)
            risk_score = self._risk_score(entity, downstream, operation)
            affected_tests = (
                self._find_affected_tests(entity_id, downstream)
                if options.include_tests
                else []
            )
            untested = self._find_untested([entity, *(d.entity for d in downstream)])
            report = ImpactReport(
                target_entity=entity,
                operation=operation,
                directly_affected=[d.entity for d in downstream if d.depth == 1],
                direct_relationships=self._direct_relationship_types(entity_id),
                indirectly_affected=[d.entity for d in downstream if d.depth > 1],
                upstream=[u.entity for u in upstream],
                max_depth=max_depth,
                risk_score=risk_score,
                risk_level=RiskLevel.from_score(risk_score),
                risk_factors=self._risk_factors(entity, downstream, upstream, operation),
                critical_paths=self._find_critical_paths(
                    downstream, options.min_importance
                ),
                recommendations=self._recommendations(
                    downstream, operation, affected_tests, untested
                ),
                affected_tests=affected_tests,
                untested=untested,
            )

        logger.debug(
            "Impact of %s on %s: %d affected, risk %s",
            operation.value,
            entity_id,
            report.total_affected,
            report.risk_level.value,
        )
        return report

    def quick_check(
        self, entity_id: str, operation: ChangeOperation | str
    ) -> QuickCheckResult:
        """Count affected entities and rate risk from a shallow traversal."""
        operation = ChangeOperation(operation)
        with self.graph.lock:
            entity = self._require(entity_id)
            downstream = self._traverse(entity_id, QUICK_CHECK_DOWNSTREAM_DEPTH, "in")
        score = self._risk_score(entity, downstream, operation)
        return QuickCheckResult(
            affected=len(downstream), risk_level=RiskLevel.from_score(score)
        )

    def _require(self, entity_id: str) -> Entity:
        entity = self.graph.get_entity(entity_id)
        if entity is None:
            raise NotFoundError("Entity", entity_id)
        return entity

    def _traverse(
        self, entity_id: str, max_depth: int, direction: Direction
    ) -> list[AffectedEntity]:
        """Breadth-first walk over dependency edges.

        ``direction="in"`` finds dependents (downstream), ``"out"`` finds
        dependencies (upstream). Each entity appears once, at its shortest
        distance from the start.
        """
        visited = {entity_id}
        results: list[AffectedEntity] = []
        queue: deque[tuple[str, int, list[str]]] = deque([(entity_id, 0, [entity_id])])

        while queue:
            current, depth, path = queue.popleft()
            if depth >= max_depth:
                continue
            for rel in self.graph.get_relationships(current, direction):
                if rel.type not in DEPENDENCY_EDGE_TYPES:
                    continue
                neighbor_id = rel.source if direction == "in" else rel.target
                if neighbor_id in visited:
                    continue
                neighbor = self.graph.get_entity(neighbor_id)
                if neighbor is None:
                    continue
                visited.add(neighbor_id)
                neighbor_path = [*path, neighbor_id]
                results.append(
                    AffectedEntity(entity=neighbor, depth=depth + 1, path=neighbor_path)
                )
                queue.append((neighbor_id, depth + 1, neighbor_path))
        return results

    @staticmethod
    def _risk_score(
        entity: Entity, downstream: list[AffectedEntity], operation: ChangeOperation
    ) -> int:
        score = OPERATION_WEIGHTS[operation.value]

        for bound, points in DEPENDENT_COUNT_WEIGHTS:
            if len(downstream) > bound:
                score += points
                break

        score += ENTITY_TYPE_WEIGHTS.get(entity.type, 0)

        max_depth = max((d.depth for d in downstream), default=0)
        for bound, points in DEPTH_WEIGHTS:
            if max_depth > bound:
                score += points
                break
        return score

    @staticmethod
    def _risk_factors(
        entity: Entity,
        downstream: list[AffectedEntity],
        upstream: list[AffectedEntity],
        operation: ChangeOperation,
    ) -> list[str]:
        factors = []
        if operation is ChangeOperation.DELETE:
            factors.append("Deleting entity - cannot be undone easily")
        if len(downstream) > 10:
            factors.append(
                f"High dependency count: {len(downstream)} entities depend on this"
            )
        if any(d.entity.type == EntityType.MODULE for d in downstream):
            factors.append("Affects entire modules")
        max_depth = max((d.depth for d in downstream), default=0)
        if max_depth > 3:
            factors.append(f"Deep cascading effect: {max_depth} levels deep")
        if entity.type == EntityType.MODULE:
            factors.append("Modifying a core module")
        if not upstream:
            factors.append("Entity has no dependencies (isolated)")
        return factors

    def _direct_relationship_types(self, entity_id: str) -> list[RelationType]:
        seen: dict[RelationType, None] = {}
        for rel in self.graph.get_relationships(entity_id, "both"):
            seen.setdefault(rel.type, None)
        return list(seen)

    def _find_critical_paths(
        self, downstream: list[AffectedEntity], min_importance: int
    ) -> list[CriticalPath]:
        """Rank dependency chains by how many chains share their entities."""
        occurrences: dict[str, int] = {}
        for item in downstream:
            for node_id in item.path:
                occurrences[node_id] = occurrences.get(node_id, 0) + 1

        ranked = []
        for item in downstream:
            importance = sum(occurrences[node_id] for node_id in item.path)
            if importance < min_importance:
                continue
            entities = [self.graph.get_entity(node_id) for node_id in item.path]
            ranked.append(
                CriticalPath(path=[e for e in entities if e is not None], importance=importance)
            )
        ranked.sort(key=lambda cp: cp.importance, reverse=True)
        return ranked[:MAX_CRITICAL_PATHS]

    def _test_links(self, entity_id: str) -> list[str]:
        """Ids of entities that test ``entity_id``."""
        ids = []
        for rel in self.graph.get_relationships(entity_id, "both"):
            if rel.type == RelationType.TESTS and rel.target == entity_id:
                ids.append(rel.source)
            elif rel.type == RelationType.TESTED_BY and rel.source == entity_id:
                ids.append(rel.target)
        return ids

    def _find_affected_tests(
        self, entity_id: str, downstream: list[AffectedEntity]
    ) -> list[Entity]:
        tests: dict[str, Entity] = {}
        for node_id in [entity_id, *(d.entity.id for d in downstream)]:
            for test_id in self._test_links(node_id):
                test = self.graph.get_entity(test_id)
                if test is not None and test_id not in tests:
                    tests[test_id] = test
        return list(tests.values())

    def _find_untested(self, entities: list[Entity]) -> list[Entity]:
        return [
            e
            for e in entities
            if e.type in (EntityType.FUNCTION, EntityType.CLASS)
            and not self._test_links(e.id)
        ]

    @staticmethod
    def _recommendations(
        downstream: list[AffectedEntity],
        operation: ChangeOperation,
        affected_tests: list[Entity],
        untested: list[Entity],
    ) -> list[str]:
        recommendations = []
        if len(downstream) > 10:
            recommendations.append(
                f"Review all {len(downstream)} dependent entities before proceeding"
            )
        if operation is ChangeOperation.DELETE and downstream:
            recommendations.append(
                "Consider deprecating instead of deleting to maintain compatibility"
            )
        if affected_tests:
            recommendations.append(
                f"Run {len(affected_tests)} affected tests before merging"
            )
        elif operation is not ChangeOperation.DELETE:
            recommendations.append("No tests found - consider adding test coverage")
        if untested:
            recommendations.append(f"{len(untested)} affected entities lack test coverage")
        if any(d.entity.type == EntityType.MODULE for d in downstream):
            recommendations.append("Impact spans multiple modules - coordinate with team")
        if max((d.depth for d in downstream), default=0) > 3:
            recommendations.append(
                "Deep cascading effects detected - review indirect dependencies carefully"
            )
        if not recommendations:
            recommendations.append("Impact appears minimal - proceed with standard review")
        return recommendations
