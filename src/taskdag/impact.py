"""What-if analysis for proposed graph mutations.

Applies a mutation to a copy of a snapshot, schedules both versions and
reports the difference. The caller's baseline is never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from taskdag.cycles import CycleDetector
from taskdag.deadline import Deadline, ensure_deadline
from taskdag.graph import GraphModel, graph_from_snapshot
from taskdag.models import DependencyEdge, DependencyType, Snapshot, ValidationResult
from taskdag.schedule import DEFAULT_FLOAT_TOLERANCE, CriticalPathCalculator, CriticalPathResult

logger = logging.getLogger(__name__)

PROPOSED_EDGE_ID = "proposed"


@dataclass(frozen=True)
class AddEdge:
    """Mutation: ``task_id`` starts depending on ``depends_on_task_id``."""

    task_id: str
    depends_on_task_id: str
    dependency_type: DependencyType = "finish_to_start"
    lag_hours: float = 0.0
    edge_id: str = PROPOSED_EDGE_ID

    def to_edge(self) -> DependencyEdge:
        return DependencyEdge(
            id=self.edge_id,
            task_id=self.task_id,
            depends_on_task_id=self.depends_on_task_id,
            dependency_type=self.dependency_type,
            lag_hours=self.lag_hours,
        )


@dataclass(frozen=True)
class ChangeDuration:
    """Mutation: a task's duration changes by ``delta_hours`` (may be negative)."""

    task_id: str
    delta_hours: float


Mutation = Union[AddEdge, ChangeDuration]


@dataclass
class ImpactResult:
    """Difference between the baseline and mutated schedules.

    Attributes:
        affected_task_ids: Tasks whose earliest start or finish moved, sorted.
        estimated_delay_hours: Growth of the project duration, never negative.
        critical_path_changed: True if the ordered critical path differs.
        baseline_duration_hours: Project duration before the mutation.
        mutated_duration_hours: Project duration after the mutation.
        critical_path: Critical path after the mutation.
        validation: Set for AddEdge mutations. When it is invalid no
            schedules were computed and the other fields are empty.
    """

    affected_task_ids: list[str] = field(default_factory=list)
    estimated_delay_hours: float = 0.0
    critical_path_changed: bool = False
    baseline_duration_hours: float = 0.0
    mutated_duration_hours: float = 0.0
    critical_path: list[str] = field(default_factory=list)
    validation: ValidationResult | None = None

    @property
    def valid(self) -> bool:
        return self.validation is None or self.validation.valid

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "affectedTaskIds": list(self.affected_task_ids),
            "estimatedDelayHours": self.estimated_delay_hours,
            "criticalPathChanged": self.critical_path_changed,
            "baselineDurationHours": self.baseline_duration_hours,
            "mutatedDurationHours": self.mutated_duration_hours,
            "criticalPath": list(self.critical_path),
            "validation": self.validation.to_dict() if self.validation is not None else None,
        }


class ImpactAnalyzer:
    """Evaluates mutations against a baseline snapshot without committing them.

    Args:
        float_tolerance: Passed through to the CriticalPathCalculator.
    """

    def __init__(self, float_tolerance: float = DEFAULT_FLOAT_TOLERANCE) -> None:
        self.calculator = CriticalPathCalculator(float_tolerance)

    def analyze_mutation(
        self,
        baseline: Snapshot,
        mutation: Mutation,
        deadline: Deadline | None = None,
    ) -> ImpactResult:
        """Compare the baseline schedule with the schedule after ``mutation``.

        Args:
            baseline: Current committed snapshot.
            mutation: AddEdge or ChangeDuration.
            deadline: Optional cancellation signal, checked between phases.

        Returns:
            ImpactResult. For an AddEdge that fails validation, the result
            carries the failed validation and nothing else.

        Raises:
            UnknownTaskReferenceError: If the mutation names a missing task.
            ValueError: If a duration change would make a duration negative.
            CyclicGraphError: If the baseline itself is not acyclic.
            ComputationCancelledError: If the deadline expires.
        """
        deadline = ensure_deadline(deadline)

        deadline.check("build_graph")
        baseline_graph = graph_from_snapshot(baseline)

        validation: ValidationResult | None = None
        if isinstance(mutation, AddEdge):
            validation = CycleDetector(baseline_graph).validate(
                mutation.task_id, mutation.depends_on_task_id
            )
            if not validation.valid:
                return ImpactResult(validation=validation)
        mutated = apply_mutation(baseline, mutation, baseline_graph)

        before = self.calculator.calculate(baseline_graph, deadline=deadline)

        deadline.check("build_graph")
        mutated_graph = graph_from_snapshot(mutated)
        after = self.calculator.calculate(mutated_graph, deadline=deadline)

        deadline.check("diff")
        result = diff_schedules(before, after)
        result.validation = validation
        logger.debug(
            "Mutation %s: delay %sh, %d task(s) affected",
            mutation,
            result.estimated_delay_hours,
            len(result.affected_task_ids),
        )
        return result


def apply_mutation(baseline: Snapshot, mutation: Mutation, graph: GraphModel | None = None) -> Snapshot:
    """Return a copy of ``baseline`` with ``mutation`` applied.

    AddEdge mutations are appended as given; callers check them with
    CycleDetector first.

    Raises:
        UnknownTaskReferenceError: If a ChangeDuration names a missing task.
        ValueError: If a duration change would make a duration negative.
    """
    if isinstance(mutation, AddEdge):
        return baseline.with_edge(mutation.to_edge())

    graph = graph if graph is not None else graph_from_snapshot(baseline)
    task = graph.task(mutation.task_id)
    new_duration = task.duration_hours + mutation.delta_hours
    if new_duration < 0:
        raise ValueError(f"Duration of {task.id} would become negative ({new_duration}h)")
    return baseline.with_task(task.with_duration(new_duration))


def diff_schedules(before: CriticalPathResult, after: CriticalPathResult) -> ImpactResult:
    """Diff two schedules of the same task set."""
    affected = sorted(
        tid
        for tid, new in after.schedule.items()
        if tid in before.schedule
        and (
            new.earliest_start != before.schedule[tid].earliest_start
            or new.earliest_finish != before.schedule[tid].earliest_finish
        )
    )
    delay = max(0.0, after.project_duration_hours - before.project_duration_hours)
    return ImpactResult(
        affected_task_ids=affected,
        estimated_delay_hours=delay,
        critical_path_changed=before.critical_path != after.critical_path,
        baseline_duration_hours=before.project_duration_hours,
        mutated_duration_hours=after.project_duration_hours,
        critical_path=list(after.critical_path),
    )


def analyze_mutation(
    baseline: Snapshot,
    mutation: Mutation,
    float_tolerance: float = DEFAULT_FLOAT_TOLERANCE,
    deadline: Deadline | None = None,
) -> ImpactResult:
    """Shortcut for ``ImpactAnalyzer(float_tolerance).analyze_mutation(...)``."""
    return ImpactAnalyzer(float_tolerance).analyze_mutation(baseline, mutation, deadline)
