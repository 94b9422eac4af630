"""Snapshot persistence (JSON or YAML).

Snapshot documents look like::

    project_id: website-relaunch
    tasks:
      - id: design
        duration_hours: 40
        status: done
        title: Design System Architecture
    dependencies:
      - id: dep-1
        task_id: build
        depends_on_task_id: design
        dependency_type: finish_to_start
        lag_hours: 0

camelCase keys (durationHours, taskId, dependsOnTaskId, type,
dependencyType, lagHours, projectId) are accepted as well.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from taskdag.errors import SnapshotFormatError
from taskdag.models import DependencyEdge, Snapshot, Task, parse_dependency_type

_TASK_ALIASES = {
    "durationHours": "duration_hours",
    "estimatedHours": "duration_hours",
    "estimated_hours": "duration_hours",
    "dueDate": "due_date",
}
_EDGE_ALIASES = {
    "taskId": "task_id",
    "dependsOnTaskId": "depends_on_task_id",
    "dependencyType": "dependency_type",
    "type": "dependency_type",
    "lagHours": "lag_hours",
}


def _normalize_keys(data: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    return {aliases.get(k, k): v for k, v in data.items()}


def _parse_task(raw: Any, position: int) -> Task:
    if not isinstance(raw, dict):
        raise SnapshotFormatError(f"tasks[{position}] must be a mapping")
    data = _normalize_keys(raw, _TASK_ALIASES)
    if "id" not in data:
        raise SnapshotFormatError(f"tasks[{position}] is missing 'id'")

    due = data.get("due_date")
    if isinstance(due, str):
        try:
            due = date.fromisoformat(due)
        except ValueError as e:
            raise SnapshotFormatError(f"tasks[{position}].due_date: {e}") from e

    try:
        return Task(
            id=str(data["id"]),
            duration_hours=data.get("duration_hours", 0.0),
            status=data.get("status", "backlog"),
            title=data.get("title") or "",
            due_date=due,
        )
    except ValueError as e:
        raise SnapshotFormatError(f"tasks[{position}]: {e}") from e


def _parse_edge(raw: Any, position: int) -> DependencyEdge:
    if not isinstance(raw, dict):
        raise SnapshotFormatError(f"dependencies[{position}] must be a mapping")
    data = _normalize_keys(raw, _EDGE_ALIASES)
    for key in ("task_id", "depends_on_task_id"):
        if key not in data:
            raise SnapshotFormatError(f"dependencies[{position}] is missing '{key}'")

    try:
        return DependencyEdge(
            id=str(data.get("id") or f"dep-{position + 1}"),
            task_id=str(data["task_id"]),
            depends_on_task_id=str(data["depends_on_task_id"]),
            dependency_type=parse_dependency_type(data.get("dependency_type", "finish_to_start")),
            lag_hours=data.get("lag_hours", 0.0),
        )
    except ValueError as e:
        raise SnapshotFormatError(f"dependencies[{position}]: {e}") from e


def snapshot_from_dict(data: Any) -> Snapshot:
    """Build a Snapshot from a parsed document.

    Raises:
        SnapshotFormatError: If the document does not describe a snapshot.
    """
    if not isinstance(data, dict):
        raise SnapshotFormatError("Snapshot document must be a mapping")

    raw_tasks = data.get("tasks") or []
    raw_edges = data.get("dependencies", data.get("edges")) or []
    if not isinstance(raw_tasks, list):
        raise SnapshotFormatError("'tasks' must be a list")
    if not isinstance(raw_edges, list):
        raise SnapshotFormatError("'dependencies' must be a list")

    project_id = data.get("project_id", data.get("projectId"))
    return Snapshot(
        tasks=tuple(_parse_task(t, i) for i, t in enumerate(raw_tasks)),
        edges=tuple(_parse_edge(e, i) for i, e in enumerate(raw_edges)),
        project_id=str(project_id) if project_id is not None else None,
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Convert a Snapshot into a serializable document."""
    data: dict[str, Any] = {}
    if snapshot.project_id is not None:
        data["project_id"] = snapshot.project_id
    data["tasks"] = [
        {
            "id": t.id,
            "duration_hours": t.duration_hours,
            "status": t.status,
            **({"title": t.title} if t.title else {}),
            **({"due_date": t.due_date.isoformat()} if t.due_date else {}),
        }
        for t in snapshot.tasks
    ]
    data["dependencies"] = [
        {
            "id": e.id,
            "task_id": e.task_id,
            "depends_on_task_id": e.depends_on_task_id,
            "dependency_type": e.dependency_type,
            "lag_hours": e.lag_hours,
        }
        for e in snapshot.edges
    ]
    return data


def _resolve_format(path: Path, fmt: str) -> str:
    if fmt != "auto":
        return fmt
    return "yaml" if path.suffix.lower() in (".yaml", ".yml") else "json"


def load_snapshot(path: Path, fmt: str = "auto") -> Snapshot:
    """Load a snapshot from a JSON or YAML file.

    Args:
        path: Path to the snapshot file.
        fmt: "json", "yaml", or "auto" to choose by file extension.

    Returns:
        The parsed Snapshot.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        SnapshotFormatError: If the file is not a valid snapshot.
    """
    with path.open("r", encoding="utf-8") as f:
        try:
            if _resolve_format(path, fmt) == "yaml":
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise SnapshotFormatError(f"Cannot parse {path}: {e}") from e
    return snapshot_from_dict(data)


def save_snapshot(snapshot: Snapshot, path: Path, fmt: str = "auto") -> None:
    """Save a snapshot to a JSON or YAML file.

    Raises:
        OSError: If the file cannot be written.
    """
    data = snapshot_to_dict(snapshot)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        if _resolve_format(path, fmt) == "yaml":
            yaml.safe_dump(data, f, sort_keys=False)
        else:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")  # Trailing newline
