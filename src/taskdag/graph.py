"""In-memory dependency graph for one project snapshot.

Provides:
- GraphModel: id -> task index plus successor/predecessor adjacency
- Graph traversal (transitive descendants/ancestors, indirect paths)
- Graph analysis (root/sink tasks, cycle tracing for diagnostics)
- Graph export (node list suitable for JSON serialization)

Design decisions:
- Uses iterative algorithms to avoid stack overflow on deep graphs
- Traversals keep a visited set, so they terminate even on cyclic input
- Adjacency lists are sorted by neighbour id so every traversal is
  deterministic
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal

from taskdag.errors import CyclicGraphError, DuplicateTaskError, UnknownTaskReferenceError
from taskdag.models import DependencyEdge, Snapshot, Task

logger = logging.getLogger(__name__)

Direction = Literal["ancestors", "descendants"]


@dataclass(frozen=True)
class GraphModel:
    """Tasks and dependency edges indexed for traversal.

    Attributes:
        tasks: Task index keyed by id.
        successors: For each task, edges where it is the predecessor.
        predecessors: For each task, edges where it is the dependent.
        edges: All edges in input order.
    """

    tasks: dict[str, Task]
    successors: dict[str, list[DependencyEdge]]
    predecessors: dict[str, list[DependencyEdge]]
    edges: tuple[DependencyEdge, ...]

    @property
    def task_ids(self) -> list[str]:
        """All task ids, sorted."""
        return sorted(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.tasks

    def task(self, task_id: str) -> Task:
        """Look up a task by id.

        Raises:
            UnknownTaskReferenceError: If the id is not in the graph.
        """
        try:
            return self.tasks[task_id]
        except KeyError:
            raise UnknownTaskReferenceError(task_id) from None

    def successor_ids(self, task_id: str) -> list[str]:
        return [e.task_id for e in self.successors.get(task_id, [])]

    def predecessor_ids(self, task_id: str) -> list[str]:
        return [e.depends_on_task_id for e in self.predecessors.get(task_id, [])]

    def has_edge(self, task_id: str, depends_on_task_id: str) -> bool:
        """Check whether ``task_id`` directly depends on ``depends_on_task_id``."""
        return any(e.depends_on_task_id == depends_on_task_id for e in self.predecessors.get(task_id, []))


def build_graph(tasks: Iterable[Task], edges: Iterable[DependencyEdge]) -> GraphModel:
    """Build a GraphModel from flat task and edge lists.

    Args:
        tasks: All tasks of the project.
        edges: All dependency edges of the project.

    Returns:
        The indexed graph.

    Raises:
        DuplicateTaskError: If a task id appears twice.
        UnknownTaskReferenceError: If an edge references a missing task.
        CyclicGraphError: If an edge is a self-loop.
    """
    task_index: dict[str, Task] = {}
    for task in tasks:
        if task.id in task_index:
            raise DuplicateTaskError(task.id)
        task_index[task.id] = task

    successors: dict[str, list[DependencyEdge]] = {tid: [] for tid in task_index}
    predecessors: dict[str, list[DependencyEdge]] = {tid: [] for tid in task_index}

    edge_list = tuple(edges)
    for edge in edge_list:
        for ref in (edge.depends_on_task_id, edge.task_id):
            if ref not in task_index:
                raise UnknownTaskReferenceError(ref, edge.id)
        if edge.task_id == edge.depends_on_task_id:
            logger.error("Self-loop dependency %s on task %s", edge.id, edge.task_id)
            raise CyclicGraphError([edge.task_id], [[edge.task_id, edge.task_id]])
        successors[edge.depends_on_task_id].append(edge)
        predecessors[edge.task_id].append(edge)

    for adjacency in successors.values():
        adjacency.sort(key=lambda e: (e.task_id, e.id))
    for adjacency in predecessors.values():
        adjacency.sort(key=lambda e: (e.depends_on_task_id, e.id))

    logger.debug("Built graph with %d tasks and %d edges", len(task_index), len(edge_list))
    return GraphModel(
        tasks=task_index,
        successors=successors,
        predecessors=predecessors,
        edges=edge_list,
    )


def graph_from_snapshot(snapshot: Snapshot) -> GraphModel:
    """Build a GraphModel from a Snapshot."""
    return build_graph(snapshot.tasks, snapshot.edges)


# Graph Traversal Functions


def _closure(graph: GraphModel, task_id: str, step: Callable[[str], list[str]]) -> set[str]:
    graph.task(task_id)

    visited: set[str] = set()
    to_visit: list[str] = list(step(task_id))

    while to_visit:
        current = to_visit.pop()
        if current in visited:
            continue
        visited.add(current)
        for nxt in step(current):
            if nxt not in visited:
                to_visit.append(nxt)

    # Only reachable from itself if the graph is cyclic
    visited.discard(task_id)
    return visited


def get_descendants(graph: GraphModel, task_id: str) -> set[str]:
    """Get all tasks that transitively depend on a task.

    Uses an iterative traversal with a visited set, so deep graphs do not
    overflow the stack and cyclic input cannot loop forever.

    Args:
        graph: The project graph.
        task_id: Task to start from.

    Returns:
        Set of task ids reachable over successor edges, excluding task_id.

    Raises:
        UnknownTaskReferenceError: If task_id is not in the graph.
    """
    return _closure(graph, task_id, graph.successor_ids)


def get_ancestors(graph: GraphModel, task_id: str) -> set[str]:
    """Get all tasks that a task transitively depends on.

    Args:
        graph: The project graph.
        task_id: Task to start from.

    Returns:
        Set of task ids reachable over predecessor edges, excluding task_id.

    Raises:
        UnknownTaskReferenceError: If task_id is not in the graph.
    """
    return _closure(graph, task_id, graph.predecessor_ids)


def find_path(graph: GraphModel, start: str, goal: str, direction: Direction) -> list[str] | None:
    """Find the shortest path between two tasks.

    Breadth-first over predecessor edges ("ancestors") or successor edges
    ("descendants"); neighbours are visited in id order, so ties between
    equally short paths resolve the same way on every call.

    Returns:
        List of task ids from start to goal inclusive, or None if unreachable.
    """
    graph.task(start)
    graph.task(goal)
    step = graph.predecessor_ids if direction == "ancestors" else graph.successor_ids

    parents: dict[str, str | None] = {start: None}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        if current == goal:
            break
        for nxt in step(current):
            if nxt not in parents:
                parents[nxt] = current
                queue.append(nxt)

    if goal not in parents:
        return None

    path: list[str] = []
    node: str | None = goal
    while node is not None:
        path.append(node)
        node = parents[node]
    path.reverse()
    return path


def get_indirect_paths(
    graph: GraphModel, task_id: str, direction: Direction
) -> list[dict[str, Any]]:
    """List transitive (non-direct) dependencies or dependents with their paths.

    Args:
        graph: The project graph.
        task_id: Task to start from.
        direction: "ancestors" for what the task depends on, "descendants"
            for what depends on it.

    Returns:
        One entry per task at depth >= 2, each with ``path`` (shortest path
        from task_id, inclusive) and ``depth`` (number of edges), ordered by
        depth then id.
    """
    graph.task(task_id)
    step = graph.predecessor_ids if direction == "ancestors" else graph.successor_ids

    parents: dict[str, str | None] = {task_id: None}
    depths: dict[str, int] = {task_id: 0}
    queue: deque[str] = deque([task_id])
    while queue:
        current = queue.popleft()
        for nxt in step(current):
            if nxt not in parents:
                parents[nxt] = current
                depths[nxt] = depths[current] + 1
                queue.append(nxt)

    result: list[dict[str, Any]] = []
    for node in sorted(depths, key=lambda n: (depths[n], n)):
        if depths[node] < 2:
            continue
        path: list[str] = []
        cursor: str | None = node
        while cursor is not None:
            path.append(cursor)
            cursor = parents[cursor]
        path.reverse()
        result.append({"path": path, "depth": depths[node]})
    return result


# Graph Analysis Functions


def get_root_tasks(graph: GraphModel) -> list[str]:
    """Get tasks with no predecessors, sorted by id."""
    return sorted(tid for tid, preds in graph.predecessors.items() if not preds)


def get_sink_tasks(graph: GraphModel) -> list[str]:
    """Get tasks nothing depends on, sorted by id."""
    return sorted(tid for tid, succs in graph.successors.items() if not succs)


def detect_cycles(graph: GraphModel, within: Iterable[str] | None = None) -> list[list[str]]:
    """Trace cycles for diagnostics.

    Runs a depth-first search over successor edges, restricted to the
    ``within`` set (all tasks by default). Every back edge to a task still
    on the search path closes one reported cycle, so at least one cycle is
    found whenever the candidates contain any.

    Args:
        graph: The project graph.
        within: Optional subset of task ids to trace, such as the tasks a
            topological sort could not emit.

    Returns:
        List of cycles, each a list of task ids whose first and last
        entries are equal. Empty if none were found.
    """
    candidates = set(graph.tasks) if within is None else set(within) & set(graph.tasks)
    cycles: list[list[str]] = []
    done: set[str] = set()

    for start in sorted(candidates):
        if start in done:
            continue

        path: list[str] = [start]
        on_path: dict[str, int] = {start: 0}
        stack = [iter(sorted({s for s in graph.successor_ids(start) if s in candidates}))]
        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                finished = path.pop()
                del on_path[finished]
                done.add(finished)
            elif node in on_path:
                cycles.append(path[on_path[node]:] + [node])
            elif node not in done:
                on_path[node] = len(path)
                path.append(node)
                stack.append(iter(sorted({s for s in graph.successor_ids(node) if s in candidates})))

    return cycles
