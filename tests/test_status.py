"""Tests for taskdag.status (ready/blocked resolution)."""

from __future__ import annotations

import pytest

from taskdag.errors import UnknownTaskReferenceError
from taskdag.models import DependencyEdge, DependencyType, Task, TaskStatus
from taskdag.status import blocking_dependencies, is_edge_satisfied, is_finished, task_dependency_status


def resolve(pred_status: TaskStatus, kind: DependencyType = "finish_to_start", done_status: str = "done") -> str:
    tasks = [Task("pred", status=pred_status), Task("task")]
    edges = [DependencyEdge("e1", "task", "pred", kind)]
    return task_dependency_status("task", tasks, edges, done_status)


class TestFinishToStart:
    """finish_to_start needs the predecessor done."""

    def test_done_predecessor_ready(self) -> None:
        """Test that a done predecessor lets the task start."""
        assert resolve("done") == "ready"

    @pytest.mark.parametrize("status", ["backlog", "ready", "in_progress", "review"])
    def test_unfinished_predecessor_blocks(self, status: TaskStatus) -> None:
        """Test that any other status blocks."""
        assert resolve(status) == "blocked"

    def test_custom_done_status(self) -> None:
        """Test that done_status and every later status count as finished."""
        assert resolve("review", done_status="review") == "ready"
        assert resolve("done", done_status="review") == "ready"
        assert resolve("in_progress", done_status="review") == "blocked"

    def test_is_finished(self) -> None:
        """Test that finishing follows the lifecycle order."""
        assert is_finished(Task("a", status="done"), "review")
        assert is_finished(Task("a", status="review"), "review")
        assert not is_finished(Task("a", status="in_progress"), "review")


class TestOtherTypes:
    """Start-to-start needs a started predecessor; finish-anchored types never block."""

    @pytest.mark.parametrize("status", ["in_progress", "review", "done"])
    def test_start_to_start_started(self, status: TaskStatus) -> None:
        """Test that a started predecessor satisfies start_to_start."""
        assert resolve(status, "start_to_start") == "ready"

    @pytest.mark.parametrize("status", ["backlog", "ready"])
    def test_start_to_start_not_started(self, status: TaskStatus) -> None:
        """Test that an unstarted predecessor blocks start_to_start."""
        assert resolve(status, "start_to_start") == "blocked"

    def test_start_to_start_with_early_done_status(self) -> None:
        """Test that a finished predecessor satisfies start_to_start."""
        assert resolve("ready", "start_to_start", done_status="ready") == "ready"
        assert resolve("backlog", "start_to_start", done_status="ready") == "blocked"

    @pytest.mark.parametrize("kind", ["finish_to_finish", "start_to_finish"])
    def test_finish_anchored_never_block(self, kind: DependencyType) -> None:
        """Test that finish-anchored types do not gate the start."""
        assert resolve("backlog", kind) == "ready"

    def test_is_edge_satisfied(self) -> None:
        """Test the single-edge predicate directly."""
        edge = DependencyEdge("e1", "b", "a")
        assert is_edge_satisfied(edge, Task("a", status="done"))
        assert not is_edge_satisfied(edge, Task("a", status="review"))


class TestBlockingDependencies:
    """Tests for blocking_dependencies."""

    def test_no_dependencies_is_ready(self) -> None:
        """Test that a task without predecessors is ready."""
        assert task_dependency_status("a", [Task("a")], []) == "ready"

    def test_lists_unsatisfied_edges_sorted(self) -> None:
        """Test that only unsatisfied edges are returned, by predecessor id."""
        tasks = [Task("c"), Task("b"), Task("a", status="done"), Task("t")]
        edges = [
            DependencyEdge("e3", "t", "c"),
            DependencyEdge("e1", "t", "a"),
            DependencyEdge("e2", "t", "b"),
        ]
        blocking = blocking_dependencies("t", tasks, edges)
        assert [e.id for e in blocking] == ["e2", "e3"]

    def test_unknown_task(self) -> None:
        """Test that an unknown task id raises."""
        with pytest.raises(UnknownTaskReferenceError):
            task_dependency_status("x", [Task("a")], [])

    def test_unknown_predecessor(self) -> None:
        """Test that an edge to a missing predecessor raises with the edge id."""
        with pytest.raises(UnknownTaskReferenceError) as exc_info:
            task_dependency_status("a", [Task("a")], [DependencyEdge("e9", "a", "ghost")])
        assert exc_info.value.edge_id == "e9"
