"""Tests for taskdag.cycles module."""

from __future__ import annotations

import logging

import pytest

from taskdag.cycles import CycleDetector, validate_dependency
from taskdag.errors import CycleError, SelfDependencyError, UnknownTaskReferenceError
from taskdag.graph import GraphModel, build_graph
from taskdag.models import DependencyEdge, Task


@pytest.fixture
def chain_graph() -> GraphModel:
    """B depends on A, C depends on B; X stands alone."""
    tasks = [Task("A"), Task("B"), Task("C"), Task("X")]
    edges = [DependencyEdge("e1", "B", "A"), DependencyEdge("e2", "C", "B")]
    return build_graph(tasks, edges)


class TestSelfDependency:
    """Self-dependencies are always invalid."""

    def test_rejected(self, chain_graph: GraphModel) -> None:
        """Test that a task cannot depend on itself."""
        result = CycleDetector(chain_graph).validate("A", "A")
        assert not result.valid
        assert not result.would_create_cycle
        assert result.error == "self_dependency"
        assert result.message == "Task cannot depend on itself"
        assert isinstance(result.to_error(), SelfDependencyError)

    def test_rejected_independent_of_edges(self) -> None:
        """Test that the check does not depend on the graph at all."""
        empty = build_graph([], [])
        result = validate_dependency(empty, "ghost", "ghost")
        assert not result.valid
        assert result.error == "self_dependency"


class TestCycleDetection:
    """Tests for edges that would close a cycle."""

    def test_three_task_cycle(self, chain_graph: GraphModel) -> None:
        """Test that A depending on C closes A -> B -> C."""
        result = CycleDetector(chain_graph).validate("A", "C")
        assert not result.valid
        assert result.would_create_cycle
        assert result.error == "cycle"
        assert result.message == "Circular dependency detected"
        assert set(result.cycle_path) == {"A", "B", "C"}
        assert result.cycle_path == ["A", "B", "C", "A"]

    def test_two_task_cycle(self, chain_graph: GraphModel) -> None:
        """Test that reversing an existing edge is a cycle."""
        result = CycleDetector(chain_graph).validate("A", "B")
        assert result.would_create_cycle
        assert result.cycle_path == ["A", "B", "A"]

    def test_cycle_error_from_result(self, chain_graph: GraphModel) -> None:
        """Test that the failure converts to a CycleError with the path."""
        err = CycleDetector(chain_graph).validate("A", "C").to_error()
        assert isinstance(err, CycleError)
        assert err.cycle_path == ["A", "B", "C", "A"]

    def test_rejection_is_logged(self, chain_graph: GraphModel, caplog: pytest.LogCaptureFixture) -> None:
        """Test that rejections are logged at INFO."""
        with caplog.at_level(logging.INFO, logger="taskdag.cycles"):
            CycleDetector(chain_graph).validate("A", "C")
        assert "would create cycle" in caplog.text

    def test_unknown_task(self, chain_graph: GraphModel) -> None:
        """Test that an unknown id is an integrity error, not a validation result."""
        with pytest.raises(UnknownTaskReferenceError):
            CycleDetector(chain_graph).validate("A", "Z")


class TestValidEdges:
    """Tests for accepted edges and their warnings."""

    def test_unrelated_edge(self, chain_graph: GraphModel) -> None:
        """Test that an edge to an unrelated task is valid without warnings."""
        result = CycleDetector(chain_graph).validate("X", "C")
        assert result.valid
        assert result.cycle_path == []
        assert result.error is None
        assert result.warnings == []

    def test_duplicate_warning(self, chain_graph: GraphModel) -> None:
        """Test that repeating an existing edge is valid but warned about."""
        result = CycleDetector(chain_graph).validate("C", "B")
        assert result.valid
        assert [w.type for w in result.warnings] == ["duplicate_dependency"]

    def test_redundant_warning(self, chain_graph: GraphModel) -> None:
        """Test that a transitively implied edge is valid but warned about."""
        result = CycleDetector(chain_graph).validate("C", "A")
        assert result.valid
        assert [w.type for w in result.warnings] == ["redundant_dependency"]
