"""Exception hierarchy for the scheduling engine.

Two categories matter to callers:

- ValidationError: the requested dependency is invalid ("your request is
  invalid"). Expected business outcome, normally returned as a structured
  ValidationResult rather than raised.
- IntegrityError: the supplied snapshot is inconsistent ("our data is
  inconsistent"). Aborts the computation.
"""

from __future__ import annotations


class TaskGraphError(Exception):
    """Base exception for task graph errors."""


# Validation errors


class ValidationError(TaskGraphError):
    """Base class for rejected dependency requests."""


class SelfDependencyError(ValidationError):
    """Raised when a task is asked to depend on itself."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task cannot depend on itself: {task_id}")


class CycleError(ValidationError):
    """Raised when a proposed dependency would create a cycle."""

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = list(cycle_path)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle_path)}")


# Integrity errors


class IntegrityError(TaskGraphError):
    """Base class for inconsistent snapshot data."""


class UnknownTaskReferenceError(IntegrityError):
    """Raised when an edge or query references a task absent from the snapshot."""

    def __init__(self, task_id: str, edge_id: str | None = None) -> None:
        self.task_id = task_id
        self.edge_id = edge_id
        if edge_id is None:
            message = f"Unknown task: {task_id}"
        else:
            message = f"Dependency {edge_id} references unknown task: {task_id}"
        super().__init__(message)


class DuplicateTaskError(IntegrityError):
    """Raised when the same task id appears twice in a snapshot."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Duplicate task id in snapshot: {task_id}")


class CyclicGraphError(IntegrityError):
    """Raised when a committed graph turns out not to be acyclic."""

    def __init__(self, residual: list[str], cycles: list[list[str]] | None = None) -> None:
        self.residual = sorted(residual)
        self.cycles = cycles or []
        cycle_info = ", ".join(" -> ".join(c) for c in self.cycles) if self.cycles else "unknown"
        super().__init__(
            f"Cannot compute topological order: graph contains cycles ({cycle_info}); "
            f"{len(self.residual)} task(s) left unordered"
        )


# Other


class ComputationCancelledError(TaskGraphError):
    """Raised when a computation's deadline expires between phases."""

    def __init__(self, phase: str) -> None:
        self.phase = phase
        super().__init__(f"Computation cancelled before phase: {phase}")


class SnapshotFormatError(TaskGraphError):
    """Raised when a snapshot document cannot be parsed."""
