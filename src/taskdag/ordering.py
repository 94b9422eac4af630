"""Topological ordering of a project graph.

Uses Kahn's algorithm. Among all currently eligible tasks the one with the
smallest id is emitted first, so the order is a pure function of the graph.
"""

from __future__ import annotations

import heapq
import logging

from taskdag.errors import CyclicGraphError
from taskdag.graph import GraphModel, detect_cycles

logger = logging.getLogger(__name__)


def get_topological_order(graph: GraphModel) -> list[str]:
    """Get tasks sorted so every task comes after all tasks it depends on.

    Args:
        graph: The project graph.

    Returns:
        List of task ids in execution order.

    Raises:
        CyclicGraphError: If the graph contains cycles, making topological
            ordering impossible. This means the acyclic invariant was broken
            upstream.
    """
    in_degree: dict[str, int] = {tid: len(edges) for tid, edges in graph.predecessors.items()}

    eligible: list[str] = [tid for tid, degree in in_degree.items() if degree == 0]
    heapq.heapify(eligible)
    result: list[str] = []

    while eligible:
        node = heapq.heappop(eligible)
        result.append(node)

        # One decrement per edge; parallel edges count separately
        for successor in graph.successor_ids(node):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(eligible, successor)

    if len(result) != len(graph):
        residual = [tid for tid, degree in in_degree.items() if degree > 0]
        cycles = detect_cycles(graph, within=residual)
        logger.error(
            "Dependency graph is not acyclic: %d of %d tasks could not be ordered (cycles: %s)",
            len(residual),
            len(graph),
            cycles,
        )
        raise CyclicGraphError(residual, cycles)

    return result


def get_topological_layers(graph: GraphModel, order: list[str] | None = None) -> dict[str, int]:
    """Assign each task its layer: the length of the longest chain above it.

    Root tasks are layer 0; every other task sits one layer below its
    deepest predecessor.

    Args:
        graph: The project graph.
        order: A topological order of the graph. Computed when omitted.

    Returns:
        Mapping of task id to layer index.
    """
    order = order if order is not None else get_topological_order(graph)
    layers: dict[str, int] = {}
    for task_id in order:
        preds = graph.predecessor_ids(task_id)
        layers[task_id] = max((layers[p] + 1 for p in preds), default=0)
    return layers


def get_longest_chain(graph: GraphModel, task_id: str, order: list[str] | None = None) -> int:
    """Count the tasks in the longest dependency chain passing through a task.

    Args:
        graph: The project graph.
        task_id: Task the chain must include.
        order: A topological order of the graph. Computed when omitted.

    Returns:
        Number of tasks in the chain (1 for an isolated task).
    """
    graph.task(task_id)
    order = order if order is not None else get_topological_order(graph)

    above = get_topological_layers(graph, order)
    below: dict[str, int] = {}
    for tid in reversed(order):
        succs = graph.successor_ids(tid)
        below[tid] = max((below[s] + 1 for s in succs), default=0)

    return above[task_id] + below[task_id] + 1
