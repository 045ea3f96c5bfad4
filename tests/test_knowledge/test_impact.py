"""Tests for change impact analysis."""

import pytest

from memograph.errors import NotFoundError
from memograph.knowledge.impact import (
    ChangeOperation,
    ImpactAnalyzer,
    ImpactOptions,
    RiskLevel,
)
from memograph.knowledge.models import ClassEntity, ModuleEntity, RelationType
from memograph.testing import make_file_entity, make_function_entity, make_relationship


def _link(graph, source, target, rel_type=RelationType.DEPENDS_ON):
    graph.add_relationship(make_relationship(type=rel_type, source=source, target=target))


@pytest.fixture
def layered(graph):
    """core <- service <- api <- cli, plus a test covering service."""
    core = make_function_entity(name="core", file_path="core.py")
    service = make_function_entity(name="service", file_path="service.py")
    api = make_file_entity(path="api.py")
    cli = make_file_entity(path="cli.py")
    test = make_file_entity(path="tests/test_service.py")
    for entity in (core, service, api, cli, test):
        graph.add_entity(entity)
    _link(graph, service.id, core.id, RelationType.CALLS)
    _link(graph, api.id, service.id, RelationType.IMPORTS)
    _link(graph, cli.id, api.id, RelationType.USES)
    _link(graph, test.id, service.id, RelationType.TESTS)
    return graph


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (0, RiskLevel.SAFE),
            (9, RiskLevel.SAFE),
            (10, RiskLevel.LOW),
            (30, RiskLevel.MEDIUM),
            (50, RiskLevel.HIGH),
            (69, RiskLevel.HIGH),
            (70, RiskLevel.CRITICAL),
        ],
    )
    def test_buckets(self, score, level):
        assert RiskLevel.from_score(score) is level


class TestAnalyze:
    def test_downstream_levels(self, layered):
        report = ImpactAnalyzer(layered).analyze("Function:core.py:core", "modify")

        assert [e.id for e in report.directly_affected] == ["Function:service.py:service"]
        assert [e.id for e in report.indirectly_affected] == ["File:api.py", "File:cli.py"]
        assert report.max_depth == 3
        assert report.total_affected == 3

    def test_upstream(self, layered):
        report = ImpactAnalyzer(layered).analyze("File:cli.py", "modify")
        assert [e.id for e in report.upstream] == [
            "File:api.py",
            "Function:service.py:service",
            "Function:core.py:core",
        ]
        assert report.directly_affected == []

    def test_tests_edges_are_not_dependencies(self, layered):
        report = ImpactAnalyzer(layered).analyze("Function:service.py:service", "modify")
        affected = {e.id for e in report.directly_affected + report.indirectly_affected}
        assert "File:tests/test_service.py" not in affected

    def test_max_depth_limits_traversal(self, layered):
        report = ImpactAnalyzer(layered).analyze(
            "Function:core.py:core", "modify", ImpactOptions(max_depth=1)
        )
        assert report.total_affected == 1
        assert report.max_depth == 1

    def test_risk_score_for_modify(self, layered):
        # modify 10 + function 10 + depth 3 (>2) 10
        report = ImpactAnalyzer(layered).analyze("Function:core.py:core", "modify")
        assert report.risk_score == 30
        assert report.risk_level is RiskLevel.MEDIUM

    def test_risk_score_for_delete(self, layered):
        # delete 30 + function 10 + depth 10
        report = ImpactAnalyzer(layered).analyze("Function:core.py:core", ChangeOperation.DELETE)
        assert report.risk_score == 50
        assert report.risk_level is RiskLevel.HIGH
        assert "Deleting entity - cannot be undone easily" in report.risk_factors
        assert (
            "Consider deprecating instead of deleting to maintain compatibility"
            in report.recommendations
        )

    def test_many_dependents_raise_risk(self, graph):
        hub = ModuleEntity(id="Module:hub", name="hub", module_name="hub")
        graph.add_entity(hub)
        for i in range(21):
            leaf = make_file_entity(path=f"leaf{i}.py")
            graph.add_entity(leaf)
            _link(graph, leaf.id, hub.id, RelationType.IMPORTS)

        report = ImpactAnalyzer(graph).analyze(hub.id, "move")

        # move 20 + >20 dependents 30 + module 20
        assert report.risk_score == 70
        assert report.risk_level is RiskLevel.CRITICAL
        assert "High dependency count: 21 entities depend on this" in report.risk_factors
        assert "Modifying a core module" in report.risk_factors
        assert "Review all 21 dependent entities before proceeding" in report.recommendations

    def test_isolated_entity(self, graph):
        graph.add_entity(make_file_entity())
        report = ImpactAnalyzer(graph).analyze("File:src/app.py", "modify")
        assert report.risk_level is RiskLevel.LOW
        assert report.risk_factors == ["Entity has no dependencies (isolated)"]
        assert report.recommendations == ["No tests found - consider adding test coverage"]

    def test_affected_tests_and_untested(self, layered):
        report = ImpactAnalyzer(layered).analyze("Function:core.py:core", "modify")

        assert [t.id for t in report.affected_tests] == ["File:tests/test_service.py"]
        # core is a function with no TESTS edge; service is covered
        assert [e.id for e in report.untested] == ["Function:core.py:core"]
        assert "Run 1 affected tests before merging" in report.recommendations
        assert "1 affected entities lack test coverage" in report.recommendations

    def test_tested_by_edges_count_as_coverage(self, graph):
        cls = ClassEntity(
            id="Class:Widget", name="Widget", file_path="w.py", start_line=1, end_line=9
        )
        test = make_file_entity(path="tests/test_w.py")
        graph.add_entity(cls)
        graph.add_entity(test)
        _link(graph, cls.id, test.id, RelationType.TESTED_BY)

        report = ImpactAnalyzer(graph).analyze(cls.id, "modify")

        assert [t.id for t in report.affected_tests] == [test.id]
        assert report.untested == []

    def test_include_tests_false(self, layered):
        report = ImpactAnalyzer(layered).analyze(
            "Function:core.py:core", "modify", ImpactOptions(include_tests=False)
        )
        assert report.affected_tests == []

    def test_critical_paths(self, layered):
        report = ImpactAnalyzer(layered).analyze("Function:core.py:core", "modify")
        # paths: [core, service], [core, service, api], [core, service, api, cli]
        # counts: core 3, service 3, api 2, cli 1
        top = report.critical_paths[0]
        assert top.importance == 9
        assert [e.id for e in top.path][-1] == "File:cli.py"
        assert [cp.importance for cp in report.critical_paths] == [9, 8, 6]

    def test_min_importance_filters_paths(self, layered):
        report = ImpactAnalyzer(layered).analyze(
            "Function:core.py:core", "modify", ImpactOptions(min_importance=7)
        )
        assert [cp.importance for cp in report.critical_paths] == [9, 8]

    def test_direct_relationship_types(self, layered):
        report = ImpactAnalyzer(layered).analyze("Function:service.py:service", "modify")
        assert report.direct_relationships == [
            RelationType.CALLS,
            RelationType.IMPORTS,
            RelationType.TESTS,
        ]

    def test_does_not_mutate_graph(self, layered):
        before = layered.to_json()
        ImpactAnalyzer(layered).analyze("Function:core.py:core", "delete")
        after = layered.to_json()
        assert before["nodes"] == after["nodes"]
        assert before["edges"] == after["edges"]

    def test_cycles_terminate(self, graph):
        a = make_file_entity(path="a.py")
        b = make_file_entity(path="b.py")
        graph.add_entity(a)
        graph.add_entity(b)
        _link(graph, a.id, b.id)
        _link(graph, b.id, a.id)
        report = ImpactAnalyzer(graph).analyze(a.id, "modify")
        assert [e.id for e in report.directly_affected] == [b.id]
        assert report.indirectly_affected == []

    def test_missing_entity(self, graph):
        with pytest.raises(NotFoundError):
            ImpactAnalyzer(graph).analyze("ghost", "modify")

    def test_unknown_operation(self, layered):
        with pytest.raises(ValueError):
            ImpactAnalyzer(layered).analyze("Function:core.py:core", "rename")


class TestQuickCheck:
    def test_counts_within_three_hops(self, graph):
        ids = [f"f{i}.py" for i in range(6)]
        for path in ids:
            graph.add_entity(make_file_entity(path=path))
        for dependent, dependency in zip(ids[1:], ids):
            _link(graph, f"File:{dependent}", f"File:{dependency}")

        result = ImpactAnalyzer(graph).quick_check("File:f0.py", "delete")

        assert result.affected == 3
        # delete 30 + depth 3 (>2) 10
        assert result.risk_level is RiskLevel.MEDIUM

    def test_missing_entity(self, graph):
        with pytest.raises(NotFoundError):
            ImpactAnalyzer(graph).quick_check("ghost", "modify")
