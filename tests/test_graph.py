"""Tests for taskdag.graph module."""

from __future__ import annotations

import pytest

from taskdag.errors import CyclicGraphError, DuplicateTaskError, UnknownTaskReferenceError
from taskdag.graph import (
    GraphModel,
    build_graph,
    detect_cycles,
    find_path,
    get_ancestors,
    get_descendants,
    get_indirect_paths,
    get_root_tasks,
    get_sink_tasks,
)
from taskdag.models import DependencyEdge, Task


def make_graph(pairs: list[tuple[str, str]], extra: tuple[str, ...] = ()) -> GraphModel:
    """Build a graph from (task, depends_on) pairs plus optional isolated tasks."""
    ids = sorted({tid for pair in pairs for tid in pair} | set(extra))
    edges = [DependencyEdge(f"e{i}", task, dep) for i, (task, dep) in enumerate(pairs)]
    return build_graph([Task(tid) for tid in ids], edges)


@pytest.fixture
def diamond_graph() -> GraphModel:
    """Create a diamond dependency graph.

    Structure:
         A
        / \\
       B   C
        \\ /
         D

    B and C depend on A; D depends on B and C.
    """
    return make_graph([("B", "A"), ("C", "A"), ("D", "B"), ("D", "C")])


@pytest.fixture
def linear_graph() -> GraphModel:
    """Create a linear chain: 1 <- 2 <- 3 <- 4."""
    return make_graph([("2", "1"), ("3", "2"), ("4", "3")])


@pytest.fixture
def cyclic_graph() -> GraphModel:
    """Create a cyclic graph: A -> B -> C -> A, which only bad data can produce."""
    return make_graph([("B", "A"), ("C", "B"), ("A", "C")])


class TestBuildGraph:
    """Tests for build_graph."""

    def test_indexes_tasks_and_edges(self, diamond_graph: GraphModel) -> None:
        """Test that tasks and adjacency are indexed both ways."""
        assert len(diamond_graph) == 4
        assert "A" in diamond_graph
        assert diamond_graph.successor_ids("A") == ["B", "C"]
        assert diamond_graph.predecessor_ids("D") == ["B", "C"]
        assert diamond_graph.task_ids == ["A", "B", "C", "D"]

    def test_adjacency_sorted_regardless_of_input_order(self) -> None:
        """Test that neighbour lists come out sorted by id."""
        graph = make_graph([("C", "A"), ("B", "A")])
        assert graph.successor_ids("A") == ["B", "C"]

    def test_duplicate_task_rejected(self) -> None:
        """Test that the same task id twice raises DuplicateTaskError."""
        with pytest.raises(DuplicateTaskError, match="a"):
            build_graph([Task("a"), Task("a")], [])

    def test_unknown_reference_rejected(self) -> None:
        """Test that an edge to a missing task raises with the edge id."""
        with pytest.raises(UnknownTaskReferenceError) as exc_info:
            build_graph([Task("a")], [DependencyEdge("dep-9", "a", "ghost")])
        assert exc_info.value.task_id == "ghost"
        assert exc_info.value.edge_id == "dep-9"

    def test_self_loop_rejected(self) -> None:
        """Test that a committed self-loop is an integrity failure."""
        with pytest.raises(CyclicGraphError):
            build_graph([Task("a")], [DependencyEdge("e1", "a", "a")])

    def test_has_edge(self, diamond_graph: GraphModel) -> None:
        """Test direct edge lookup in the dependency direction."""
        assert diamond_graph.has_edge("B", "A")
        assert not diamond_graph.has_edge("A", "B")
        assert not diamond_graph.has_edge("D", "A")

    def test_task_lookup_unknown(self, diamond_graph: GraphModel) -> None:
        """Test that task() raises for unknown ids."""
        with pytest.raises(UnknownTaskReferenceError):
            diamond_graph.task("Z")


class TestTraversal:
    """Tests for descendants and ancestors."""

    def test_descendants_of_root(self, diamond_graph: GraphModel) -> None:
        """Test Descendants(A) = {B, C, D}."""
        assert get_descendants(diamond_graph, "A") == {"B", "C", "D"}

    def test_ancestors_of_sink(self, diamond_graph: GraphModel) -> None:
        """Test Ancestors(D) = {A, B, C}."""
        assert get_ancestors(diamond_graph, "D") == {"A", "B", "C"}

    def test_leaf_and_root_edges(self, diamond_graph: GraphModel) -> None:
        """Test the empty ends of the traversal."""
        assert get_descendants(diamond_graph, "D") == set()
        assert get_ancestors(diamond_graph, "A") == set()

    def test_unknown_task(self, diamond_graph: GraphModel) -> None:
        """Test that traversing from an unknown task raises."""
        with pytest.raises(UnknownTaskReferenceError):
            get_descendants(diamond_graph, "Z")

    def test_terminates_on_cycle(self, cyclic_graph: GraphModel) -> None:
        """Test that a cycle does not make the traversal loop forever."""
        assert get_descendants(cyclic_graph, "A") == {"B", "C"}
        assert get_ancestors(cyclic_graph, "A") == {"B", "C"}

    def test_deep_chain(self) -> None:
        """Test that a long chain does not hit recursion limits."""
        pairs = [(str(i + 1), str(i)) for i in range(5000)]
        graph = make_graph(pairs)
        assert len(get_descendants(graph, "0")) == 5000


class TestFindPath:
    """Tests for find_path."""

    def test_ancestor_direction(self, diamond_graph: GraphModel) -> None:
        """Test a path over predecessor edges, ties broken by id."""
        assert find_path(diamond_graph, "D", "A", "ancestors") == ["D", "B", "A"]

    def test_descendant_direction(self, diamond_graph: GraphModel) -> None:
        """Test a path over successor edges."""
        assert find_path(diamond_graph, "A", "D", "descendants") == ["A", "B", "D"]

    def test_unreachable(self, diamond_graph: GraphModel) -> None:
        """Test that siblings are not reachable from each other."""
        assert find_path(diamond_graph, "B", "C", "descendants") is None


class TestIndirectPaths:
    """Tests for get_indirect_paths."""

    def test_diamond_ancestors(self, diamond_graph: GraphModel) -> None:
        """Test that only depth >= 2 entries are listed."""
        assert get_indirect_paths(diamond_graph, "D", "ancestors") == [
            {"path": ["D", "B", "A"], "depth": 2}
        ]

    def test_linear_ordered_by_depth(self, linear_graph: GraphModel) -> None:
        """Test ordering and depth counting along a chain."""
        assert get_indirect_paths(linear_graph, "4", "ancestors") == [
            {"path": ["4", "3", "2"], "depth": 2},
            {"path": ["4", "3", "2", "1"], "depth": 3},
        ]
        assert get_indirect_paths(linear_graph, "1", "descendants") == [
            {"path": ["1", "2", "3"], "depth": 2},
            {"path": ["1", "2", "3", "4"], "depth": 3},
        ]

    def test_no_indirect(self, diamond_graph: GraphModel) -> None:
        """Test that direct neighbours only produce an empty list."""
        assert get_indirect_paths(diamond_graph, "B", "ancestors") == []


class TestGraphAnalysis:
    """Tests for roots, sinks and cycle tracing."""

    def test_roots_and_sinks(self, diamond_graph: GraphModel) -> None:
        """Test root and sink discovery."""
        assert get_root_tasks(diamond_graph) == ["A"]
        assert get_sink_tasks(diamond_graph) == ["D"]

    def test_isolated_task_is_root_and_sink(self) -> None:
        """Test that a task without edges counts as both."""
        graph = make_graph([("B", "A")], extra=("X",))
        assert get_root_tasks(graph) == ["A", "X"]
        assert get_sink_tasks(graph) == ["B", "X"]

    def test_detect_cycles_none(self, diamond_graph: GraphModel) -> None:
        """Test that an acyclic graph reports no cycles."""
        assert detect_cycles(diamond_graph) == []

    def test_detect_cycles(self, cyclic_graph: GraphModel) -> None:
        """Test that a cycle is traced with first and last entries equal."""
        assert detect_cycles(cyclic_graph) == [["A", "B", "C", "A"]]

    def test_detect_cycles_within_subset(self, cyclic_graph: GraphModel) -> None:
        """Test that tracing stays inside the given subset."""
        assert detect_cycles(cyclic_graph, within=["A", "B"]) == []

    def test_detect_cycles_past_dead_end(self) -> None:
        """Test that a dead-end successor does not hide a cycle."""
        graph = make_graph([("C", "A"), ("B", "A"), ("A", "B")])
        assert detect_cycles(graph) == [["A", "B", "A"]]
