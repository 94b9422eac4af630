"""Tests for taskdag.impact (what-if analysis)."""

from __future__ import annotations

import pytest

from taskdag.errors import UnknownTaskReferenceError
from taskdag.impact import (
    AddEdge,
    ChangeDuration,
    ImpactAnalyzer,
    analyze_mutation,
    apply_mutation,
    diff_schedules,
)
from taskdag.models import DependencyEdge, Snapshot, Task
from taskdag.schedule import compute_critical_path


@pytest.fixture
def baseline() -> Snapshot:
    """Chain 1 -> 2 -> 3 (40, 80, 50 hours) plus a free 10-hour task 4."""
    return Snapshot.of(
        [Task("1", 40), Task("2", 80), Task("3", 50), Task("4", 10)],
        [DependencyEdge("e1", "2", "1"), DependencyEdge("e2", "3", "2")],
    )


class TestAddEdge:
    """Tests for the add-edge mutation."""

    def test_lag_on_critical_path_delays_project(self, baseline: Snapshot) -> None:
        """Test that a lagged edge on the new critical path delays by at least the lag."""
        result = analyze_mutation(baseline, AddEdge("4", "3", lag_hours=5))
        assert result.valid
        assert result.baseline_duration_hours == 170
        assert result.mutated_duration_hours == 185
        assert result.estimated_delay_hours >= 5
        assert result.estimated_delay_hours == 15
        assert result.affected_task_ids == ["4"]
        assert result.critical_path_changed
        assert result.critical_path == ["1", "2", "3", "4"]

    def test_edge_with_slack_does_not_delay(self, baseline: Snapshot) -> None:
        """Test that an edge absorbed by float leaves the duration alone."""
        result = analyze_mutation(baseline, AddEdge("4", "1"))
        assert result.estimated_delay_hours == 0
        assert result.affected_task_ids == ["4"]
        assert not result.critical_path_changed

    def test_cycle_refused(self, baseline: Snapshot) -> None:
        """Test that an edge closing a cycle returns the failed validation only."""
        result = analyze_mutation(baseline, AddEdge("1", "3"))
        assert not result.valid
        assert result.validation is not None
        assert result.validation.would_create_cycle
        assert result.validation.cycle_path == ["1", "2", "3", "1"]
        assert result.affected_task_ids == []
        assert result.estimated_delay_hours == 0

    def test_self_dependency_refused(self, baseline: Snapshot) -> None:
        """Test that a self-dependency is refused before scheduling."""
        result = analyze_mutation(baseline, AddEdge("2", "2"))
        assert not result.valid
        assert result.validation is not None
        assert result.validation.error == "self_dependency"

    def test_baseline_not_mutated(self, baseline: Snapshot) -> None:
        """Test that the caller's snapshot keeps its edges."""
        analyze_mutation(baseline, AddEdge("4", "3"))
        assert len(baseline.edges) == 2

    def test_to_edge(self) -> None:
        """Test conversion of the mutation to a DependencyEdge."""
        edge = AddEdge("b", "a", "start_to_start", 2, edge_id="dep-7").to_edge()
        assert edge == DependencyEdge("dep-7", "b", "a", "start_to_start", 2)


class TestChangeDuration:
    """Tests for the change-duration mutation."""

    def test_shrink_floors_delay_at_zero(self, baseline: Snapshot) -> None:
        """Test that shortening the critical path reports no delay."""
        result = analyze_mutation(baseline, ChangeDuration("2", -30))
        assert result.mutated_duration_hours == 140
        assert result.estimated_delay_hours == 0
        assert result.affected_task_ids == ["2", "3"]
        assert result.validation is None

    def test_grow_critical_task(self, baseline: Snapshot) -> None:
        """Test that growing a critical task delays by the same amount."""
        result = analyze_mutation(baseline, ChangeDuration("1", 12))
        assert result.estimated_delay_hours == 12
        assert result.affected_task_ids == ["1", "2", "3"]
        assert not result.critical_path_changed

    def test_grow_within_float(self, baseline: Snapshot) -> None:
        """Test that growth inside the float only affects the task itself."""
        result = analyze_mutation(baseline, ChangeDuration("4", 50))
        assert result.estimated_delay_hours == 0
        assert result.affected_task_ids == ["4"]

    def test_negative_result_rejected(self, baseline: Snapshot) -> None:
        """Test that a duration cannot go below zero."""
        with pytest.raises(ValueError, match="would become negative"):
            analyze_mutation(baseline, ChangeDuration("4", -11))

    def test_unknown_task(self, baseline: Snapshot) -> None:
        """Test that changing a missing task raises."""
        with pytest.raises(UnknownTaskReferenceError):
            ImpactAnalyzer().analyze_mutation(baseline, ChangeDuration("9", 1))


class TestApplyMutation:
    """Tests for apply_mutation."""

    def test_add_edge_appends(self, baseline: Snapshot) -> None:
        """Test that the new edge is appended to a copy."""
        mutated = apply_mutation(baseline, AddEdge("4", "3", edge_id="e3"))
        assert mutated.edges[-1] == DependencyEdge("e3", "4", "3")
        assert len(baseline.edges) == 2

    def test_change_duration_replaces_task(self, baseline: Snapshot) -> None:
        """Test that only the named task's duration changes."""
        mutated = apply_mutation(baseline, ChangeDuration("2", -30))
        assert [t.duration_hours for t in mutated.tasks] == [40, 50, 50, 10]
        assert mutated.edges == baseline.edges

    def test_change_duration_unknown_task(self, baseline: Snapshot) -> None:
        """Test that a missing task raises."""
        with pytest.raises(UnknownTaskReferenceError):
            apply_mutation(baseline, ChangeDuration("9", 1))


class TestDiffSchedules:
    """Tests for diff_schedules and the serialized result."""

    def test_identical_schedules(self, baseline: Snapshot) -> None:
        """Test that a schedule diffed with itself is empty."""
        result = compute_critical_path(baseline)
        diff = diff_schedules(result, result)
        assert diff.affected_task_ids == []
        assert diff.estimated_delay_hours == 0
        assert not diff.critical_path_changed

    def test_to_dict(self, baseline: Snapshot) -> None:
        """Test the camelCase keys of the impact result."""
        data = analyze_mutation(baseline, AddEdge("4", "3", lag_hours=5)).to_dict()
        assert data["valid"] is True
        assert data["affectedTaskIds"] == ["4"]
        assert data["estimatedDelayHours"] == 15
        assert data["criticalPathChanged"] is True
        assert data["validation"]["valid"] is True
