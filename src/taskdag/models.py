"""Value types for tasks, dependency edges and project snapshots.

All types are frozen dataclasses. The engine only borrows a snapshot for the
duration of a computation and never mutates it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Literal, cast

from taskdag.errors import CycleError, SelfDependencyError

DependencyType = Literal[
    "finish_to_start",
    "start_to_start",
    "finish_to_finish",
    "start_to_finish",
]
TaskStatus = Literal["backlog", "ready", "in_progress", "review", "done"]

DEPENDENCY_TYPES: tuple[DependencyType, ...] = (
    "finish_to_start",
    "start_to_start",
    "finish_to_finish",
    "start_to_finish",
)

# Ordered lifecycle; later entries are further along.
TASK_STATUSES: tuple[TaskStatus, ...] = (
    "backlog",
    "ready",
    "in_progress",
    "review",
    "done",
)


def _validate_id(value: str, field_name: str) -> None:
    """Validate an identifier field.

    Raises:
        ValueError: If value is not a non-empty string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")


def _validate_hours(value: float, field_name: str) -> None:
    """Validate a non-negative, finite number of hours.

    Raises:
        ValueError: If value is negative, not a number, or infinite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{field_name} must be finite")
    if value < 0:
        raise ValueError(f"{field_name} cannot be negative")


def parse_dependency_type(value: str) -> DependencyType:
    """Normalize a dependency type string.

    Accepts the canonical snake_case names and the usual abbreviations
    (FS, SS, FF, SF), case-insensitively.

    Raises:
        ValueError: If the value is not a known dependency type.
    """
    abbreviations = {
        "fs": "finish_to_start",
        "ss": "start_to_start",
        "ff": "finish_to_finish",
        "sf": "start_to_finish",
    }
    normalized = str(value).strip().lower().replace("-", "_")
    normalized = abbreviations.get(normalized, normalized)
    if normalized not in DEPENDENCY_TYPES:
        raise ValueError(
            f"Invalid dependency type: {value}. Must be one of: {', '.join(DEPENDENCY_TYPES)}"
        )
    return cast(DependencyType, normalized)


@dataclass(frozen=True)
class Task:
    """A task as seen by the scheduling engine.

    Attributes:
        id: Task identifier.
        duration_hours: Estimated duration in hours.
        status: Lifecycle status.
        title: Optional display title.
        due_date: Optional due date (carried through, not scheduled against).
    """

    id: str
    duration_hours: float = 0.0
    status: TaskStatus = "backlog"
    title: str = ""
    due_date: date | None = None

    def __post_init__(self) -> None:
        _validate_id(self.id, "id")
        _validate_hours(self.duration_hours, "duration_hours")
        if self.status not in TASK_STATUSES:
            raise ValueError(
                f"Invalid status: {self.status}. Must be one of: {', '.join(TASK_STATUSES)}"
            )

    def with_duration(self, duration_hours: float) -> Task:
        """Return a copy of this task with a different duration."""
        return Task(
            id=self.id,
            duration_hours=duration_hours,
            status=self.status,
            title=self.title,
            due_date=self.due_date,
        )


@dataclass(frozen=True)
class DependencyEdge:
    """A dependency between two tasks.

    ``task_id`` depends on ``depends_on_task_id``: the latter is the
    predecessor (edge source), the former the successor (edge target).

    Attributes:
        id: Edge identifier.
        task_id: The dependent task.
        depends_on_task_id: The task being depended on.
        dependency_type: How the two tasks' start/finish events are linked.
        lag_hours: Mandatory delay after the type-defined trigger.
    """

    id: str
    task_id: str
    depends_on_task_id: str
    dependency_type: DependencyType = "finish_to_start"
    lag_hours: float = 0.0

    def __post_init__(self) -> None:
        _validate_id(self.id, "id")
        _validate_id(self.task_id, "task_id")
        _validate_id(self.depends_on_task_id, "depends_on_task_id")
        _validate_hours(self.lag_hours, "lag_hours")
        if self.dependency_type not in DEPENDENCY_TYPES:
            raise ValueError(
                f"Invalid dependency type: {self.dependency_type}. "
                f"Must be one of: {', '.join(DEPENDENCY_TYPES)}"
            )

    @property
    def source(self) -> str:
        """Predecessor task id."""
        return self.depends_on_task_id

    @property
    def target(self) -> str:
        """Successor task id."""
        return self.task_id


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of one project's tasks and dependency edges."""

    tasks: tuple[Task, ...] = ()
    edges: tuple[DependencyEdge, ...] = ()
    project_id: str | None = None

    @classmethod
    def of(
        cls,
        tasks: list[Task] | tuple[Task, ...],
        edges: list[DependencyEdge] | tuple[DependencyEdge, ...] = (),
        project_id: str | None = None,
    ) -> Snapshot:
        """Build a snapshot from any sequence of tasks and edges."""
        return cls(tasks=tuple(tasks), edges=tuple(edges), project_id=project_id)

    def with_edge(self, edge: DependencyEdge) -> Snapshot:
        """Return a new snapshot with ``edge`` appended."""
        return Snapshot(tasks=self.tasks, edges=(*self.edges, edge), project_id=self.project_id)

    def with_task(self, task: Task) -> Snapshot:
        """Return a new snapshot with the task of the same id replaced."""
        tasks = tuple(task if t.id == task.id else t for t in self.tasks)
        return Snapshot(tasks=tasks, edges=self.edges, project_id=self.project_id)


@dataclass(frozen=True)
class TaskSchedule:
    """CPM schedule for a single task, in hours from project start."""

    task_id: str
    duration_hours: float
    earliest_start: float
    earliest_finish: float
    latest_start: float
    latest_finish: float
    float_hours: float

    @property
    def is_critical(self) -> bool:
        return self.float_hours == 0


@dataclass(frozen=True)
class ScheduleWarning:
    """A non-fatal scheduling anomaly surfaced alongside a result."""

    kind: str
    message: str
    task_id: str | None = None


@dataclass(frozen=True)
class DependencyWarning:
    """A warning attached to an otherwise valid dependency."""

    type: str
    message: str


@dataclass
class ValidationResult:
    """Outcome of validating a proposed dependency edge.

    Attributes:
        task_id: The dependent task of the proposed edge.
        depends_on_task_id: The predecessor of the proposed edge.
        valid: True if the edge may be admitted.
        would_create_cycle: True if the edge would close a cycle.
        cycle_path: Task ids forming the loop, first and last entries equal.
        error: Error kind ("self_dependency" or "cycle"), None when valid.
        message: Human-readable description of the failure.
        warnings: Non-blocking concerns about a valid edge.
    """

    task_id: str
    depends_on_task_id: str
    valid: bool
    would_create_cycle: bool = False
    cycle_path: list[str] = field(default_factory=list)
    error: str | None = None
    message: str = ""
    warnings: list[DependencyWarning] = field(default_factory=list)

    def to_error(self) -> Exception | None:
        """Return the matching validation exception, or None when valid."""
        if self.valid:
            return None
        if self.error == "self_dependency":
            return SelfDependencyError(self.task_id)
        return CycleError(self.cycle_path)

    def to_dict(self) -> dict[str, object]:
        return {
            "taskId": self.task_id,
            "dependsOnTaskId": self.depends_on_task_id,
            "valid": self.valid,
            "wouldCreateCycle": self.would_create_cycle,
            "cyclePath": list(self.cycle_path),
            "error": self.error,
            "message": self.message,
            "warnings": [{"type": w.type, "message": w.message} for w in self.warnings],
        }
