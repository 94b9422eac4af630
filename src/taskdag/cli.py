"""taskdag CLI - Main entry point."""

from __future__ import annotations

import contextlib
import json
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from taskdag import __version__
from taskdag.cli_utils import (
    EXIT_INTEGRITY_ERROR,
    EXIT_USER_ERROR,
    configure_logging,
    format_option,
    json_option,
    quiet_option,
    read_snapshot,
    snapshot_argument,
    wire_config,
)
from taskdag.config import EngineConfig
from taskdag.deadline import Deadline
from taskdag.errors import ComputationCancelledError, IntegrityError, UnknownTaskReferenceError
from taskdag.impact import AddEdge, ChangeDuration, ImpactResult, Mutation, apply_mutation
from taskdag.models import Snapshot, parse_dependency_type
from taskdag.service import SnapshotDependencyService
from taskdag.snapshot import save_snapshot

app = typer.Typer(
    name="taskdag",
    help="Task dependency graph and critical path scheduling.",
    add_completion=False,
)

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)

DEFAULT_PROJECT = "default"


# -----------------------------------------------------------------------------
# Output Helpers
# -----------------------------------------------------------------------------


def _output_success(message: str, quiet: bool = False) -> None:
    """Print a success message."""
    if not quiet:
        console.print(f"[green]Success:[/green] {message}")


def _output_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]Error:[/red] {message}")


def _output_warning(message: str, quiet: bool = False) -> None:
    """Print a warning message."""
    if not quiet:
        err_console.print(f"[yellow]Warning:[/yellow] {message}")


def _output_info(message: str, quiet: bool = False) -> None:
    """Print an info message."""
    if not quiet:
        console.print(message)


def _output_json(data: Any) -> None:
    console.print_json(json.dumps(data))


def _exit_error(message: str, exit_code: int = EXIT_USER_ERROR) -> None:
    """Print error and exit."""
    _output_error(message)
    raise typer.Exit(code=exit_code)


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


def _fail(message: str, exit_code: int, json_output: bool, category: str) -> None:
    """Report a failure as JSON or on stderr, then exit."""
    if json_output:
        _output_json({"error": message, "category": category})
        raise typer.Exit(code=exit_code)
    _exit_error(message, exit_code)


@contextlib.contextmanager
def _engine_errors(json_output: bool) -> Generator[None, None, None]:
    """Map engine exceptions to exit codes.

    Unknown task ids named on the command line are user errors; any other
    integrity error means the snapshot itself is inconsistent.
    """
    try:
        yield
    except UnknownTaskReferenceError as e:
        if e.edge_id is None:
            _fail(str(e), EXIT_USER_ERROR, json_output, "validation")
        _fail(str(e), EXIT_INTEGRITY_ERROR, json_output, "integrity")
    except IntegrityError as e:
        _fail(f"Inconsistent snapshot: {e}", EXIT_INTEGRITY_ERROR, json_output, "integrity")
    except ComputationCancelledError as e:
        _fail(str(e), EXIT_INTEGRITY_ERROR, json_output, "cancelled")
    except ValueError as e:
        _fail(str(e), EXIT_USER_ERROR, json_output, "validation")


def _exit_if_invalid(result: ImpactResult, json_output: bool) -> None:
    """Exit with a user error when a proposed edge was rejected.

    In JSON mode the result has already been printed.
    """
    validation = result.validation
    if validation is None or validation.valid:
        return
    if json_output:
        raise typer.Exit(code=EXIT_USER_ERROR)
    if validation.would_create_cycle:
        _exit_error(f"{validation.message}: {' -> '.join(validation.cycle_path)}")
    _exit_error(validation.message)


def _load_snapshot(snapshot_path: Path, fmt: str | None) -> tuple[Snapshot, EngineConfig]:
    config = wire_config(snapshot_format=fmt, start_dir=snapshot_path.parent)
    return read_snapshot(snapshot_path, config), config


def _load_service(snapshot_path: Path, fmt: str | None) -> tuple[SnapshotDependencyService, str, Deadline]:
    snapshot, config = _load_snapshot(snapshot_path, fmt)
    service = SnapshotDependencyService.from_snapshot(snapshot, config)
    return service, snapshot.project_id or DEFAULT_PROJECT, Deadline(config.deadline_seconds)


# -----------------------------------------------------------------------------
# Version and Main Callbacks
# -----------------------------------------------------------------------------


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"taskdag version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Log engine phases to stderr.",
    ),
) -> None:
    """Task dependency graph and critical path scheduling."""
    configure_logging(verbose)


# -----------------------------------------------------------------------------
# Validate Command
# -----------------------------------------------------------------------------


@app.command()
def validate(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task that would gain the dependency."),
    depends_on: str = typer.Argument(..., help="Task it would depend on."),
    dependency_type: str = typer.Option(
        "finish_to_start",
        "--type",
        "-t",
        help="Dependency type (finish_to_start, start_to_start, finish_to_finish, start_to_finish).",
    ),
    lag: float = typer.Option(0.0, "--lag", help="Lag in hours."),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Check whether TASK_ID may depend on DEPENDS_ON.

    Rejects self-dependencies and edges that would close a cycle (showing
    the cycle), and reports the schedule impact of valid edges.
    """
    service, project_id, deadline = _load_service(snapshot_path, fmt)

    with _engine_errors(json_output):
        mutation = AddEdge(task_id, depends_on, parse_dependency_type(dependency_type), lag)
        impact = service.analyze_dependency_impact(project_id, mutation, deadline)

    if json_output:
        _output_json(impact.to_dict())
    elif impact.valid:
        _output_success(f"{task_id} may depend on {depends_on}", quiet)
        if impact.validation is not None:
            for w in impact.validation.warnings:
                _output_warning(w.message, quiet)
        _output_info(f"  Estimated delay: {_format_hours(impact.estimated_delay_hours)}h", quiet)
        _output_info(f"  Affected tasks: {len(impact.affected_task_ids)}", quiet)
        if impact.critical_path_changed:
            _output_info("  Critical path changes", quiet)

    _exit_if_invalid(impact, json_output)


# -----------------------------------------------------------------------------
# Critical Path Command
# -----------------------------------------------------------------------------


@app.command("critical-path")
def critical_path(
    snapshot_path: Path = snapshot_argument(),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Compute the CPM schedule and critical path of a snapshot."""
    service, project_id, deadline = _load_service(snapshot_path, fmt)

    with _engine_errors(json_output):
        result = service.compute_critical_path(project_id, deadline)

    if json_output:
        _output_json({"projectId": project_id, **result.to_dict()})
        return

    if quiet:
        for tid in result.critical_path:
            console.print(tid)
        return

    for w in result.warnings:
        _output_warning(w.message)

    table = Table(title=f"Schedule for {project_id}")
    table.add_column("Task", style="cyan")
    table.add_column("Duration", justify="right")
    table.add_column("ES", justify="right")
    table.add_column("EF", justify="right")
    table.add_column("LS", justify="right")
    table.add_column("LF", justify="right")
    table.add_column("Float", justify="right")

    for tid in result.order:
        s = result.schedule[tid]
        style = "bold red" if s.is_critical else "white"
        table.add_row(
            f"[{style}]{tid}[/{style}]",
            _format_hours(s.duration_hours),
            _format_hours(s.earliest_start),
            _format_hours(s.earliest_finish),
            _format_hours(s.latest_start),
            _format_hours(s.latest_finish),
            _format_hours(s.float_hours),
        )

    console.print(table)
    _output_info(f"Critical path: {' -> '.join(result.critical_path) or '-'}")
    _output_info(f"Project duration: {_format_hours(result.project_duration_hours)}h")


# -----------------------------------------------------------------------------
# Order Command
# -----------------------------------------------------------------------------


@app.command()
def order(
    snapshot_path: Path = snapshot_argument(),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
) -> None:
    """Print tasks in execution (topological) order."""
    service, project_id, deadline = _load_service(snapshot_path, fmt)

    with _engine_errors(json_output):
        result = service.compute_critical_path(project_id, deadline)

    if json_output:
        _output_json({"order": list(result.order)})
        return
    for tid in result.order:
        console.print(tid)


# -----------------------------------------------------------------------------
# Traversal Commands
# -----------------------------------------------------------------------------


def _print_task_set(label: str, task_ids: set[str], json_output: bool, quiet: bool) -> None:
    ordered = sorted(task_ids)
    if json_output:
        _output_json({label: ordered})
        return
    if not ordered:
        _output_info(f"No {label}.", quiet)
        return
    for tid in ordered:
        console.print(tid)


@app.command()
def descendants(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task to start from."),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List every task that transitively depends on TASK_ID."""
    service, project_id, _ = _load_service(snapshot_path, fmt)
    with _engine_errors(json_output):
        found = service.descendants(project_id, task_id)
    _print_task_set("descendants", found, json_output, quiet)


@app.command()
def ancestors(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task to start from."),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List every task TASK_ID transitively depends on."""
    service, project_id, _ = _load_service(snapshot_path, fmt)
    with _engine_errors(json_output):
        found = service.ancestors(project_id, task_id)
    _print_task_set("ancestors", found, json_output, quiet)


# -----------------------------------------------------------------------------
# Impact Command
# -----------------------------------------------------------------------------


@app.command()
def impact(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task the mutation applies to."),
    depends_on: str | None = typer.Option(
        None,
        "--depends-on",
        "-d",
        help="Add a dependency of TASK_ID on this task.",
    ),
    dependency_type: str = typer.Option("finish_to_start", "--type", "-t", help="Dependency type."),
    lag: float = typer.Option(0.0, "--lag", help="Lag in hours for --depends-on."),
    delta: float | None = typer.Option(
        None,
        "--delta",
        help="Change TASK_ID's duration by this many hours.",
    ),
    write: Path | None = typer.Option(
        None,
        "--write",
        "-w",
        help="Save the mutated snapshot to this file (format by extension).",
    ),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Analyze the schedule impact of a mutation.

    Pass exactly one of --depends-on (new edge) or --delta (duration change).
    The input snapshot is never modified; --write saves the mutated copy.
    """
    if (depends_on is None) == (delta is None):
        _exit_error("Pass exactly one of --depends-on or --delta")

    snapshot, config = _load_snapshot(snapshot_path, fmt)
    service = SnapshotDependencyService.from_snapshot(snapshot, config)
    project_id = snapshot.project_id or DEFAULT_PROJECT

    with _engine_errors(json_output):
        mutation: Mutation
        if depends_on is not None:
            mutation = AddEdge(
                task_id,
                depends_on,
                parse_dependency_type(dependency_type),
                lag,
                edge_id=str(uuid.uuid4()),
            )
        else:
            mutation = ChangeDuration(task_id, delta or 0.0)
        result = service.analyze_dependency_impact(project_id, mutation, Deadline(config.deadline_seconds))

    if json_output:
        _output_json(result.to_dict())
    elif result.valid:
        _output_info("[bold]Impact[/bold]", quiet)
        _output_info(
            f"  Project duration: {_format_hours(result.baseline_duration_hours)}h -> "
            f"{_format_hours(result.mutated_duration_hours)}h",
            quiet,
        )
        _output_info(f"  Estimated delay: {_format_hours(result.estimated_delay_hours)}h", quiet)
        _output_info(f"  Affected tasks: {', '.join(result.affected_task_ids) or '-'}", quiet)
        changed = "yes" if result.critical_path_changed else "no"
        _output_info(f"  Critical path changed: {changed}", quiet)

    _exit_if_invalid(result, json_output)

    if write is not None:
        try:
            save_snapshot(apply_mutation(snapshot, mutation), write)
        except OSError as e:
            _fail(f"Cannot write snapshot: {e}", EXIT_USER_ERROR, json_output, "io")
        if not json_output:
            _output_success(f"Wrote mutated snapshot to: {write}", quiet)


# -----------------------------------------------------------------------------
# Status Command
# -----------------------------------------------------------------------------


@app.command()
def status(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task to check."),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
) -> None:
    """Show whether TASK_ID is ready to start or blocked by its dependencies."""
    service, project_id, _ = _load_service(snapshot_path, fmt)

    with _engine_errors(json_output):
        resolved = service.dependency_status(project_id, task_id)
        details = service.task_dependencies(project_id, task_id)

    blocking = [d["dependsOnTaskId"] for d in details.dependencies if d["isBlocking"]]
    if json_output:
        _output_json({"taskId": task_id, "status": resolved, "blockedBy": blocking})
        return

    colour = "green" if resolved == "ready" else "yellow"
    console.print(f"{task_id}: [{colour}]{resolved}[/{colour}]")
    for tid in blocking:
        console.print(f"  - waiting on {tid}")


# -----------------------------------------------------------------------------
# Dependencies Command
# -----------------------------------------------------------------------------


@app.command("deps")
def deps(
    snapshot_path: Path = snapshot_argument(),
    task_id: str = typer.Argument(..., help="Task to inspect."),
    indirect: bool = typer.Option(False, "--indirect", "-i", help="Include transitive paths."),
    fmt: str | None = format_option(),
    json_output: bool = json_option(),
) -> None:
    """Show the dependencies, dependents and chain position of TASK_ID."""
    service, project_id, _ = _load_service(snapshot_path, fmt)

    with _engine_errors(json_output):
        details = service.task_dependencies(project_id, task_id, include_indirect=indirect)

    if json_output:
        _output_json(details.to_dict())
        return

    table = Table(title=f"Dependencies of {task_id}")
    table.add_column("Direction", style="cyan")
    table.add_column("Task", style="green")
    table.add_column("Type")
    table.add_column("State")

    for d in details.dependencies:
        state = "[yellow]blocking[/yellow]" if d["isBlocking"] else "satisfied"
        table.add_row("depends on", d["dependsOnTaskId"], d["dependencyType"], state)
    for d in details.dependents:
        state = "[yellow]blocked[/yellow]" if d["isBlocked"] else "free"
        table.add_row("required by", d["taskId"], d["dependencyType"], state)
    for entry in details.indirect_dependencies:
        table.add_row("depends on (indirect)", " <- ".join(entry["path"]), "-", f"depth {entry['depth']}")
    for entry in details.indirect_dependents:
        table.add_row("required by (indirect)", " -> ".join(entry["path"]), "-", f"depth {entry['depth']}")

    console.print(table)
    _output_info(f"Longest chain: {details.longest_chain}")
    _output_info(f"Critical path position: {details.critical_path_position}")
    _output_info(f"Float: {_format_hours(details.float_hours)}h")


# -----------------------------------------------------------------------------
# Graph Command
# -----------------------------------------------------------------------------


@app.command()
def graph(
    snapshot_path: Path = snapshot_argument(),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the graph JSON to this file instead of stdout.",
    ),
    fmt: str | None = format_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Export the dependency graph with layout coordinates as JSON."""
    service, project_id, _ = _load_service(snapshot_path, fmt)

    with _engine_errors(False):
        result = service.dependency_graph(project_id)

    if output is None:
        _output_json(result.to_dict())
        return

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        _exit_error(f"Cannot write graph: {e}")
    _output_success(f"Wrote graph to: {output}", quiet)


if __name__ == "__main__":
    app()
