"""Dependency service: the engine's surface for the surrounding application.

DependencyService is the interface consumed by the HTTP/service layer;
SnapshotDependencyService is its implementation. It pulls a fresh snapshot
from two provider callables on every call and composes the graph, cycle,
ordering, schedule, impact and status modules over it.

Concurrency: the service holds no locks. create_dependency validates and
then calls ``commit``; the caller must run the whole call inside a
per-project critical section (a per-project lock or a serializable
transaction) so no other edge can be committed in between.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from taskdag.config import EngineConfig
from taskdag.cycles import CycleDetector
from taskdag.deadline import Deadline
from taskdag.graph import (
    GraphModel,
    build_graph,
    get_ancestors,
    get_descendants,
    get_indirect_paths,
)
from taskdag.impact import AddEdge, ImpactAnalyzer, ImpactResult, Mutation
from taskdag.models import DependencyEdge, DependencyType, Snapshot, Task, ValidationResult, parse_dependency_type
from taskdag.ordering import get_longest_chain, get_topological_layers, get_topological_order
from taskdag.schedule import CriticalPathCalculator, CriticalPathResult
from taskdag.status import DependencyStatus, blocking_dependencies, is_edge_satisfied, task_dependency_status

logger = logging.getLogger(__name__)

TaskProvider = Callable[[str], Iterable[Task]]
EdgeProvider = Callable[[str], Iterable[DependencyEdge]]

LAYOUT_SPACING = 100


@dataclass(frozen=True)
class DependencyRequest:
    """A request to add a dependency edge."""

    task_id: str
    depends_on_task_id: str
    dependency_type: DependencyType | None = None
    lag_hours: float = 0.0
    edge_id: str | None = None


@dataclass
class CreateDependencyResult:
    """Outcome of create_dependency.

    Attributes:
        validation: Cycle/self-dependency check of the request.
        impact: Schedule impact, set only when validation passed.
        edge: The committed edge, set only when validation passed.
    """

    validation: ValidationResult
    impact: ImpactResult | None = None
    edge: DependencyEdge | None = None

    @property
    def created(self) -> bool:
        return self.edge is not None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "created": self.created,
            "validation": self.validation.to_dict(),
        }
        if self.edge is not None:
            result["dependency"] = {
                "dependencyId": self.edge.id,
                "taskId": self.edge.task_id,
                "dependsOnTaskId": self.edge.depends_on_task_id,
                "dependencyType": self.edge.dependency_type,
                "lagHours": self.edge.lag_hours,
            }
        if self.impact is not None:
            result["impact"] = self.impact.to_dict()
        return result


@dataclass
class TaskDependencies:
    """Direct and indirect neighbourhood of one task."""

    task_id: str
    dependencies: list[dict[str, Any]] = field(default_factory=list)
    dependents: list[dict[str, Any]] = field(default_factory=list)
    indirect_dependencies: list[dict[str, Any]] = field(default_factory=list)
    indirect_dependents: list[dict[str, Any]] = field(default_factory=list)
    longest_chain: int = 1
    critical_path_position: str = "off_path"
    float_hours: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "dependencies": {
                "direct": self.dependencies,
                "indirect": self.indirect_dependencies,
            },
            "dependents": {
                "direct": self.dependents,
                "indirect": self.indirect_dependents,
            },
            "chainAnalysis": {
                "longestChain": self.longest_chain,
                "criticalPathPosition": self.critical_path_position,
                "floatHours": self.float_hours,
            },
        }


@dataclass
class DependencyGraph:
    """Nodes with layout coordinates and edges, for visualization."""

    project_id: str
    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"projectId": self.project_id, "nodes": self.nodes, "edges": self.edges}


class DependencyService(ABC):
    """Interface for dependency-related operations on one project at a time."""

    @abstractmethod
    def validate_dependency(
        self,
        project_id: str,
        task_id: str,
        depends_on_task_id: str,
        deadline: Deadline | None = None,
    ) -> ValidationResult:
        """Check whether a dependency may be added without creating a cycle."""

    @abstractmethod
    def create_dependency(
        self,
        project_id: str,
        request: DependencyRequest,
        commit: Callable[[DependencyEdge], None],
        deadline: Deadline | None = None,
    ) -> CreateDependencyResult:
        """Validate a dependency, analyse its impact and hand it to ``commit``."""

    @abstractmethod
    def compute_critical_path(self, project_id: str, deadline: Deadline | None = None) -> CriticalPathResult:
        """Compute the CPM schedule of the committed project graph."""

    @abstractmethod
    def analyze_dependency_impact(
        self, project_id: str, mutation: Mutation, deadline: Deadline | None = None
    ) -> ImpactResult:
        """Evaluate a mutation without committing it."""

    @abstractmethod
    def descendants(self, project_id: str, task_id: str) -> set[str]:
        """All tasks that transitively depend on the task."""

    @abstractmethod
    def ancestors(self, project_id: str, task_id: str) -> set[str]:
        """All tasks the task transitively depends on."""

    @abstractmethod
    def dependency_status(self, project_id: str, task_id: str) -> DependencyStatus:
        """Whether the task's dependencies let it start."""

    @abstractmethod
    def task_dependencies(
        self, project_id: str, task_id: str, include_indirect: bool = False
    ) -> TaskDependencies:
        """Direct (and optionally indirect) dependencies and dependents of a task."""

    @abstractmethod
    def dependency_graph(self, project_id: str) -> DependencyGraph:
        """Nodes and edges of the project graph with layout coordinates."""


class SnapshotDependencyService(DependencyService):
    """DependencyService over snapshots supplied by provider callables.

    Args:
        list_tasks: Returns the tasks of a project.
        list_dependency_edges: Returns the dependency edges of a project.
        config: Engine configuration. Defaults to EngineConfig().
    """

    def __init__(
        self,
        list_tasks: TaskProvider,
        list_dependency_edges: EdgeProvider,
        config: EngineConfig | None = None,
    ) -> None:
        self.list_tasks = list_tasks
        self.list_dependency_edges = list_dependency_edges
        self.config = config or EngineConfig()
        self.calculator = CriticalPathCalculator(self.config.float_tolerance)
        self.analyzer = ImpactAnalyzer(self.config.float_tolerance)

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, config: EngineConfig | None = None) -> SnapshotDependencyService:
        """Serve a single fixed snapshot regardless of project id."""
        return cls(lambda _: snapshot.tasks, lambda _: snapshot.edges, config)

    # Snapshot helpers

    def _snapshot(self, project_id: str) -> Snapshot:
        return Snapshot(
            tasks=tuple(self.list_tasks(project_id)),
            edges=tuple(self.list_dependency_edges(project_id)),
            project_id=project_id,
        )

    def _graph(self, project_id: str, deadline: Deadline | None = None) -> GraphModel:
        deadline = self._deadline(deadline)
        deadline.check("build_graph")
        snapshot = self._snapshot(project_id)
        return build_graph(snapshot.tasks, snapshot.edges)

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        if deadline is not None:
            return deadline
        return Deadline(self.config.deadline_seconds)

    # Operations

    def validate_dependency(
        self,
        project_id: str,
        task_id: str,
        depends_on_task_id: str,
        deadline: Deadline | None = None,
    ) -> ValidationResult:
        graph = self._graph(project_id, deadline)
        return CycleDetector(graph).validate(task_id, depends_on_task_id)

    def create_dependency(
        self,
        project_id: str,
        request: DependencyRequest,
        commit: Callable[[DependencyEdge], None],
        deadline: Deadline | None = None,
    ) -> CreateDependencyResult:
        deadline = self._deadline(deadline)
        dependency_type = request.dependency_type or parse_dependency_type(
            self.config.default_dependency_type
        )
        mutation = AddEdge(
            task_id=request.task_id,
            depends_on_task_id=request.depends_on_task_id,
            dependency_type=dependency_type,
            lag_hours=request.lag_hours,
            edge_id=request.edge_id or str(uuid.uuid4()),
        )

        snapshot = self._snapshot(project_id)
        deadline.check("build_graph")
        graph = build_graph(snapshot.tasks, snapshot.edges)
        validation = CycleDetector(graph).validate(request.task_id, request.depends_on_task_id)
        if not validation.valid:
            return CreateDependencyResult(validation=validation)

        impact = self.analyzer.analyze_mutation(snapshot, mutation, deadline)

        edge = mutation.to_edge()
        commit(edge)
        logger.info(
            "Created dependency %s: %s depends on %s (%s, lag %sh)",
            edge.id,
            edge.task_id,
            edge.depends_on_task_id,
            edge.dependency_type,
            edge.lag_hours,
        )
        return CreateDependencyResult(validation=validation, impact=impact, edge=edge)

    def compute_critical_path(self, project_id: str, deadline: Deadline | None = None) -> CriticalPathResult:
        deadline = self._deadline(deadline)
        graph = self._graph(project_id, deadline)
        return self.calculator.calculate(graph, deadline=deadline)

    def analyze_dependency_impact(
        self, project_id: str, mutation: Mutation, deadline: Deadline | None = None
    ) -> ImpactResult:
        return self.analyzer.analyze_mutation(
            self._snapshot(project_id), mutation, self._deadline(deadline)
        )

    def descendants(self, project_id: str, task_id: str) -> set[str]:
        return get_descendants(self._graph(project_id), task_id)

    def ancestors(self, project_id: str, task_id: str) -> set[str]:
        return get_ancestors(self._graph(project_id), task_id)

    def dependency_status(self, project_id: str, task_id: str) -> DependencyStatus:
        snapshot = self._snapshot(project_id)
        return task_dependency_status(task_id, snapshot.tasks, snapshot.edges, self.config.done_status)

    def task_dependencies(
        self, project_id: str, task_id: str, include_indirect: bool = False
    ) -> TaskDependencies:
        deadline = self._deadline(None)
        graph = self._graph(project_id, deadline)
        graph.task(task_id)
        done = self.config.done_status

        blocking_ids = {e.id for e in blocking_dependencies(task_id, graph.tasks.values(), graph.edges, done)}
        dependencies = [
            {
                "dependencyId": e.id,
                "dependsOnTaskId": e.depends_on_task_id,
                "dependencyType": e.dependency_type,
                "lagHours": e.lag_hours,
                "status": graph.tasks[e.depends_on_task_id].status,
                "isBlocking": e.id in blocking_ids,
            }
            for e in graph.predecessors[task_id]
        ]
        this_task = graph.tasks[task_id]
        dependents = [
            {
                "dependencyId": e.id,
                "taskId": e.task_id,
                "dependencyType": e.dependency_type,
                "isBlocked": not is_edge_satisfied(e, this_task, done),
            }
            for e in graph.successors[task_id]
        ]

        order = get_topological_order(graph)
        cpm = self.calculator.calculate(graph, order=order, deadline=deadline)
        result = TaskDependencies(
            task_id=task_id,
            dependencies=dependencies,
            dependents=dependents,
            longest_chain=get_longest_chain(graph, task_id, order),
            critical_path_position="on_path" if task_id in cpm.critical_path else "off_path",
            float_hours=cpm.schedule[task_id].float_hours,
        )
        if include_indirect:
            result.indirect_dependencies = get_indirect_paths(graph, task_id, "ancestors")
            result.indirect_dependents = get_indirect_paths(graph, task_id, "descendants")
        return result

    def dependency_graph(self, project_id: str) -> DependencyGraph:
        graph = self._graph(project_id)
        order = get_topological_order(graph)
        layers = get_topological_layers(graph, order)

        rows: dict[int, int] = {}
        nodes: list[dict[str, Any]] = []
        for task_id in order:
            layer = layers[task_id]
            row = rows.get(layer, 0)
            rows[layer] = row + 1
            task = graph.tasks[task_id]
            nodes.append(
                {
                    "id": task_id,
                    "title": task.title,
                    "status": task.status,
                    "x": layer * LAYOUT_SPACING,
                    "y": row * LAYOUT_SPACING,
                }
            )

        edges = [
            {
                "id": e.id,
                "source": e.depends_on_task_id,
                "target": e.task_id,
                "type": e.dependency_type,
                "lagHours": e.lag_hours,
            }
            for e in sorted(graph.edges, key=lambda e: (e.depends_on_task_id, e.task_id, e.id))
        ]
        return DependencyGraph(project_id=project_id, nodes=nodes, edges=edges)
