"""Ready/blocked resolution for a task's predecessors.

A pure function of the snapshot, recomputed on every call.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from taskdag.errors import UnknownTaskReferenceError
from taskdag.models import TASK_STATUSES, DependencyEdge, Task, TaskStatus

DependencyStatus = Literal["ready", "blocked"]

# Statuses at or past this point count as "started"
STARTED_STATUSES: frozenset[TaskStatus] = frozenset(
    TASK_STATUSES[TASK_STATUSES.index("in_progress"):]
)


def is_finished(task: Task, done_status: str = "done") -> bool:
    """Check whether a task has reached ``done_status`` or a later status."""
    return TASK_STATUSES.index(task.status) >= TASK_STATUSES.index(done_status)


def is_edge_satisfied(edge: DependencyEdge, predecessor: Task, done_status: str = "done") -> bool:
    """Check whether an edge lets its dependent task start.

    - finish_to_start: the predecessor must be finished, that is at
      ``done_status`` or later in the task lifecycle.
    - start_to_start: the predecessor must have started.
    - finish_to_finish / start_to_finish: they constrain when the dependent
      may finish, not when it may start, so they never block.
    """
    if edge.dependency_type == "finish_to_start":
        return is_finished(predecessor, done_status)
    if edge.dependency_type == "start_to_start":
        return predecessor.status in STARTED_STATUSES or is_finished(predecessor, done_status)
    return True


def blocking_dependencies(
    task_id: str,
    tasks: Iterable[Task],
    edges: Iterable[DependencyEdge],
    done_status: str = "done",
) -> list[DependencyEdge]:
    """List the predecessor edges of a task that are not yet satisfied.

    Args:
        task_id: The task to check.
        tasks: All tasks of the project.
        edges: All dependency edges of the project.
        done_status: Status that counts as completed.

    Returns:
        Unsatisfied edges, sorted by predecessor id.

    Raises:
        UnknownTaskReferenceError: If task_id or a predecessor is missing.
    """
    index = {t.id: t for t in tasks}
    if task_id not in index:
        raise UnknownTaskReferenceError(task_id)

    blocking: list[DependencyEdge] = []
    for edge in edges:
        if edge.task_id != task_id:
            continue
        predecessor = index.get(edge.depends_on_task_id)
        if predecessor is None:
            raise UnknownTaskReferenceError(edge.depends_on_task_id, edge.id)
        if not is_edge_satisfied(edge, predecessor, done_status):
            blocking.append(edge)
    return sorted(blocking, key=lambda e: (e.depends_on_task_id, e.id))


def task_dependency_status(
    task_id: str,
    tasks: Iterable[Task],
    edges: Iterable[DependencyEdge],
    done_status: str = "done",
) -> DependencyStatus:
    """Resolve whether a task's dependencies allow it to start.

    Returns:
        "ready" if every predecessor edge is satisfied, otherwise "blocked".
    """
    if blocking_dependencies(task_id, tasks, edges, done_status):
        return "blocked"
    return "ready"
