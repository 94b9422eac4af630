"""Cycle detection for proposed dependency edges.

Validation runs against the current committed graph. The check and the
subsequent insert are not atomic: callers must serialize
validate-then-commit per project (see DependencyService.create_dependency).
"""

from __future__ import annotations

import logging

from taskdag.graph import GraphModel, find_path, get_ancestors
from taskdag.models import DependencyWarning, ValidationResult

logger = logging.getLogger(__name__)


class CycleDetector:
    """Decides whether a new edge keeps the graph acyclic.

    Attributes:
        graph: The committed project graph the edge would be added to.
    """

    def __init__(self, graph: GraphModel) -> None:
        self.graph = graph

    def validate(self, task_id: str, depends_on_task_id: str) -> ValidationResult:
        """Validate that ``task_id`` may depend on ``depends_on_task_id``.

        A self-dependency is rejected without touching the graph. Otherwise
        the edge closes a cycle exactly when task_id is already an ancestor
        of depends_on_task_id.

        Args:
            task_id: The task that would gain a dependency.
            depends_on_task_id: The task it would depend on.

        Returns:
            ValidationResult. On a cycle, ``cycle_path`` lists the loop in
            dependency order, starting and ending with task_id.

        Raises:
            UnknownTaskReferenceError: If either task is not in the graph.
        """
        if task_id == depends_on_task_id:
            return ValidationResult(
                task_id=task_id,
                depends_on_task_id=depends_on_task_id,
                valid=False,
                error="self_dependency",
                message="Task cannot depend on itself",
            )

        self.graph.task(task_id)
        self.graph.task(depends_on_task_id)

        # Parent pointers lead from depends_on back up to task_id
        chain = find_path(self.graph, depends_on_task_id, task_id, "ancestors")
        if chain is not None:
            cycle_path = list(reversed(chain))
            cycle_path.append(task_id)
            logger.info("Rejected dependency %s -> %s: would create cycle %s",
                        task_id, depends_on_task_id, cycle_path)
            return ValidationResult(
                task_id=task_id,
                depends_on_task_id=depends_on_task_id,
                valid=False,
                would_create_cycle=True,
                cycle_path=cycle_path,
                error="cycle",
                message="Circular dependency detected",
            )

        return ValidationResult(
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
            valid=True,
            warnings=self._warnings(task_id, depends_on_task_id),
        )

    def _warnings(self, task_id: str, depends_on_task_id: str) -> list[DependencyWarning]:
        if self.graph.has_edge(task_id, depends_on_task_id):
            return [
                DependencyWarning(
                    type="duplicate_dependency",
                    message=f"{task_id} already depends on {depends_on_task_id}",
                )
            ]
        if depends_on_task_id in get_ancestors(self.graph, task_id):
            return [
                DependencyWarning(
                    type="redundant_dependency",
                    message=(
                        f"{task_id} already depends on {depends_on_task_id} transitively; "
                        "the new edge only matters if its type or lag tightens the schedule"
                    ),
                )
            ]
        return []


def validate_dependency(graph: GraphModel, task_id: str, depends_on_task_id: str) -> ValidationResult:
    """Shortcut for ``CycleDetector(graph).validate(task_id, depends_on_task_id)``."""
    return CycleDetector(graph).validate(task_id, depends_on_task_id)
