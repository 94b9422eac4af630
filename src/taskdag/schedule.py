"""Critical Path Method (CPM) scheduling.

Runs a forward pass (earliest start/finish) in topological order and a
backward pass (latest start/finish) in reverse order, then derives per-task
float and the critical path. All times are hours from project start.

Dependency types relate the predecessor P and the successor S:

    finish_to_start   S starts  >= P finishes + lag
    start_to_start    S starts  >= P starts   + lag
    finish_to_finish  S finishes >= P finishes + lag
    start_to_finish   S finishes >= P starts   + lag

A schedule is computed fresh for every call and never patched in place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from taskdag.deadline import Deadline, ensure_deadline
from taskdag.graph import GraphModel, graph_from_snapshot
from taskdag.models import DependencyEdge, ScheduleWarning, Snapshot, TaskSchedule
from taskdag.ordering import get_topological_order

logger = logging.getLogger(__name__)

DEFAULT_FLOAT_TOLERANCE = 1e-9


def forward_offset(edge: DependencyEdge, es: dict[str, float], ef: dict[str, float], duration: float) -> float:
    """Earliest start the edge imposes on its successor."""
    pred = edge.depends_on_task_id
    kind = edge.dependency_type
    if kind == "finish_to_start":
        return ef[pred] + edge.lag_hours
    if kind == "start_to_start":
        return es[pred] + edge.lag_hours
    if kind == "finish_to_finish":
        return ef[pred] + edge.lag_hours - duration
    return es[pred] + edge.lag_hours - duration


def backward_offset(edge: DependencyEdge, ls: dict[str, float], lf: dict[str, float], duration: float) -> float:
    """Latest finish the edge allows its predecessor (of the given duration)."""
    succ = edge.task_id
    kind = edge.dependency_type
    if kind == "finish_to_start":
        return ls[succ] - edge.lag_hours
    if kind == "start_to_start":
        return ls[succ] - edge.lag_hours + duration
    if kind == "finish_to_finish":
        return lf[succ] - edge.lag_hours
    return lf[succ] - edge.lag_hours + duration


@dataclass(frozen=True)
class CriticalPathResult:
    """Outcome of a CPM run.

    Attributes:
        project_duration_hours: Earliest possible project finish.
        critical_path: One ordered chain of critical tasks from a task with
            no predecessors to a task with no successors.
        critical_task_ids: Every zero-float task, in topological order.
            Differs from critical_path only when several chains tie.
        schedule: Per-task schedule keyed by task id.
        order: The topological order the passes ran in.
        warnings: Non-fatal anomalies found while scheduling.
    """

    project_duration_hours: float
    critical_path: tuple[str, ...]
    critical_task_ids: tuple[str, ...]
    schedule: dict[str, TaskSchedule]
    order: tuple[str, ...]
    warnings: tuple[ScheduleWarning, ...] = field(default_factory=tuple)

    @property
    def float_by_task(self) -> dict[str, float]:
        return {tid: self.schedule[tid].float_hours for tid in self.order}

    def is_critical(self, task_id: str) -> bool:
        return self.schedule[task_id].is_critical

    def non_critical_tasks(self) -> list[tuple[str, float]]:
        """Tasks with positive float, most slack first."""
        entries = [(tid, s.float_hours) for tid, s in self.schedule.items() if not s.is_critical]
        return sorted(entries, key=lambda item: (-item[1], item[0]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "criticalTaskIds": list(self.critical_path),
            "criticalTasks": list(self.critical_task_ids),
            "floatByTask": self.float_by_task,
            "projectDurationHours": self.project_duration_hours,
            "schedule": [
                {
                    "taskId": s.task_id,
                    "durationHours": s.duration_hours,
                    "earliestStart": s.earliest_start,
                    "earliestFinish": s.earliest_finish,
                    "latestStart": s.latest_start,
                    "latestFinish": s.latest_finish,
                    "floatHours": s.float_hours,
                    "critical": s.is_critical,
                }
                for s in (self.schedule[tid] for tid in self.order)
            ],
            "nonCriticalTasks": [
                {"taskId": tid, "floatHours": hours} for tid, hours in self.non_critical_tasks()
            ],
            "warnings": [
                {"kind": w.kind, "taskId": w.task_id, "message": w.message} for w in self.warnings
            ],
        }


class CriticalPathCalculator:
    """Computes CPM schedules for a project graph.

    Critical path tie-break: when several zero-float chains exist, the
    chain returned is the first one found by a depth-first search that
    tries start tasks and successors in topological-order position. With
    the smallest-id topological order this prefers the chain whose tasks
    come earliest in that order.

    Project duration is the maximum earliest finish over all tasks, not
    only over sink tasks. The two differ only when a start_to_start or
    start_to_finish edge lets a predecessor finish after every sink. The
    schedule then keeps the later finish so no task overruns the project,
    and a ``non_sink_finishes_last`` warning names the task.

    Args:
        float_tolerance: Float values within this distance of zero are
            treated as exactly zero.
    """

    def __init__(self, float_tolerance: float = DEFAULT_FLOAT_TOLERANCE) -> None:
        if float_tolerance < 0:
            raise ValueError("float_tolerance cannot be negative")
        self.float_tolerance = float_tolerance

    def calculate(
        self,
        graph: GraphModel,
        order: list[str] | None = None,
        deadline: Deadline | None = None,
    ) -> CriticalPathResult:
        """Run both CPM passes over the graph.

        Args:
            graph: The project graph.
            order: Topological order of the graph. Computed when omitted.
            deadline: Optional cancellation signal, checked between phases.

        Returns:
            CriticalPathResult for the graph.

        Raises:
            CyclicGraphError: If the graph is not acyclic.
            ComputationCancelledError: If the deadline expires.
        """
        deadline = ensure_deadline(deadline)
        if order is None:
            deadline.check("sort")
            order = get_topological_order(graph)

        warnings: list[ScheduleWarning] = []

        deadline.check("forward_pass")
        es, ef = self._forward_pass(graph, order, warnings)

        project_duration = max(ef.values(), default=0.0)
        sink_duration = max(
            (ef[tid] for tid in order if not graph.successors[tid]), default=0.0
        )
        if project_duration > sink_duration + self.float_tolerance:
            # Only reachable through start_to_start / start_to_finish edges
            latest = max(order, key=lambda tid: (ef[tid], tid))
            warnings.append(
                ScheduleWarning(
                    kind="non_sink_finishes_last",
                    task_id=latest,
                    message=(
                        f"Task {latest} finishes at {ef[latest]}h, after every task "
                        f"without successors ({sink_duration}h)"
                    ),
                )
            )

        deadline.check("backward_pass")
        ls, lf = self._backward_pass(graph, order, project_duration)

        schedule: dict[str, TaskSchedule] = {}
        for tid in order:
            schedule[tid] = TaskSchedule(
                task_id=tid,
                duration_hours=graph.tasks[tid].duration_hours,
                earliest_start=es[tid],
                earliest_finish=ef[tid],
                latest_start=ls[tid],
                latest_finish=lf[tid],
                float_hours=self._normalize_float(tid, ls[tid] - es[tid], warnings),
            )

        critical_ids = tuple(tid for tid in order if schedule[tid].is_critical)

        deadline.check("critical_chain")
        chain = self._critical_chain(graph, order, schedule, es, ef, project_duration)
        if chain is None:
            chain = list(critical_ids)
            if chain:
                logger.warning("No connected critical chain found; reporting all critical tasks")
                warnings.append(
                    ScheduleWarning(
                        kind="disconnected_critical_path",
                        message="No connected chain of critical tasks; listing all critical tasks",
                    )
                )

        for warning in warnings:
            logger.warning("Schedule anomaly (%s): %s", warning.kind, warning.message)

        return CriticalPathResult(
            project_duration_hours=project_duration,
            critical_path=tuple(chain),
            critical_task_ids=critical_ids,
            schedule=schedule,
            order=tuple(order),
            warnings=tuple(warnings),
        )

    def _forward_pass(
        self,
        graph: GraphModel,
        order: list[str],
        warnings: list[ScheduleWarning],
    ) -> tuple[dict[str, float], dict[str, float]]:
        es: dict[str, float] = {}
        ef: dict[str, float] = {}
        for tid in order:
            duration = graph.tasks[tid].duration_hours
            start = 0.0
            preds = graph.predecessors[tid]
            if preds:
                raw = max(forward_offset(e, es, ef, duration) for e in preds)
                if raw < 0:
                    warnings.append(
                        ScheduleWarning(
                            kind="negative_start_clamped",
                            task_id=tid,
                            message=f"Task {tid} would start at {raw}h; clamped to 0",
                        )
                    )
                start = max(0.0, raw)
            es[tid] = start
            ef[tid] = start + duration
        return es, ef

    def _backward_pass(
        self,
        graph: GraphModel,
        order: list[str],
        project_duration: float,
    ) -> tuple[dict[str, float], dict[str, float]]:
        ls: dict[str, float] = {}
        lf: dict[str, float] = {}
        for tid in reversed(order):
            duration = graph.tasks[tid].duration_hours
            finish = project_duration
            for edge in graph.successors[tid]:
                finish = min(finish, backward_offset(edge, ls, lf, duration))
            lf[tid] = finish
            ls[tid] = finish - duration
        return ls, lf

    def _normalize_float(self, task_id: str, raw: float, warnings: list[ScheduleWarning]) -> float:
        if abs(raw) <= self.float_tolerance:
            return 0.0
        if raw < 0:
            warnings.append(
                ScheduleWarning(
                    kind="negative_float",
                    task_id=task_id,
                    message=f"Task {task_id} has negative float {raw}h",
                )
            )
        return raw

    def _critical_chain(
        self,
        graph: GraphModel,
        order: list[str],
        schedule: dict[str, TaskSchedule],
        es: dict[str, float],
        ef: dict[str, float],
        project_duration: float,
    ) -> list[str] | None:
        position = {tid: i for i, tid in enumerate(order)}
        tol = self.float_tolerance

        def is_end(tid: str) -> bool:
            return not graph.successors[tid] and abs(ef[tid] - project_duration) <= tol

        def critical_successors(tid: str) -> Iterator[str]:
            nexts: dict[str, None] = {}
            for edge in graph.successors[tid]:
                succ = edge.task_id
                if not schedule[succ].is_critical:
                    continue
                slack = es[succ] - forward_offset(edge, es, ef, graph.tasks[succ].duration_hours)
                if abs(slack) <= tol:
                    nexts[succ] = None
            return iter(sorted(nexts, key=position.__getitem__))

        starts = [tid for tid in order if schedule[tid].is_critical and not graph.predecessors[tid]]

        # A task that cannot reach an end once never will; the graph is a DAG
        dead: set[str] = set()
        for start in starts:
            if start in dead:
                continue
            path = [start]
            if is_end(start):
                return path
            stack = [critical_successors(start)]
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    dead.add(path.pop())
                    stack.pop()
                    continue
                if nxt in dead:
                    continue
                path.append(nxt)
                if is_end(nxt):
                    return path
                stack.append(critical_successors(nxt))
        return None


def compute_critical_path(
    snapshot: Snapshot,
    float_tolerance: float = DEFAULT_FLOAT_TOLERANCE,
    deadline: Deadline | None = None,
) -> CriticalPathResult:
    """Build the graph for a snapshot and run CPM on it.

    Raises:
        UnknownTaskReferenceError: If an edge references a missing task.
        CyclicGraphError: If the snapshot's edges are not acyclic.
        ComputationCancelledError: If the deadline expires.
    """
    deadline = ensure_deadline(deadline)
    deadline.check("build_graph")
    graph = graph_from_snapshot(snapshot)
    return CriticalPathCalculator(float_tolerance).calculate(graph, deadline=deadline)
