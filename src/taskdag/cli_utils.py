"""CLI utility functions for taskdag.

Provides helper functions for:
- Config wiring: Extracting Typer CLI options and passing to load_config
- Snapshot loading: Reading a snapshot file with user-friendly failures
- Error formatting: Consistent user-friendly error messages with exit codes
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, NoReturn

import typer

from taskdag.config import EngineConfig, load_config
from taskdag.errors import SnapshotFormatError
from taskdag.models import Snapshot
from taskdag.snapshot import load_snapshot

# Exit code conventions
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # Invalid dependency, bad input, missing file
EXIT_INTEGRITY_ERROR = 2  # Snapshot data is inconsistent


# -----------------------------------------------------------------------------
# Error Formatting Helpers
# -----------------------------------------------------------------------------


def error(msg: str, *, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print an error message and exit with the given exit code.

    Raises:
        typer.Exit: Always raises to exit the program.
    """
    styled_prefix = typer.style("Error:", fg=typer.colors.RED, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)
    raise typer.Exit(code=exit_code)


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------


def configure_logging(verbose: bool = False) -> None:
    """Send library log records to stderr.

    Args:
        verbose: Log at DEBUG instead of WARNING.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# -----------------------------------------------------------------------------
# Config Wiring Helper
# -----------------------------------------------------------------------------


def wire_config(
    float_tolerance: float | None = None,
    deadline_seconds: float | None = None,
    snapshot_format: str | None = None,
    start_dir: Path | None = None,
) -> EngineConfig:
    """Wire CLI options to load_config with appropriate overrides.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    cli_overrides: dict[str, Any] = {}

    if float_tolerance is not None:
        cli_overrides["float_tolerance"] = float_tolerance
    if deadline_seconds is not None:
        cli_overrides["deadline_seconds"] = deadline_seconds
    if snapshot_format is not None:
        cli_overrides["snapshot_format"] = snapshot_format

    try:
        return load_config(cli_overrides=cli_overrides, start_dir=start_dir)
    except ValueError as e:
        error(f"Invalid configuration: {e}", exit_code=EXIT_USER_ERROR)


def read_snapshot(path: Path, config: EngineConfig) -> Snapshot:
    """Load a snapshot file, exiting with a user error if it is unusable.

    Raises:
        typer.Exit: If the file is missing or malformed.
    """
    if not path.exists():
        error(f"Snapshot file does not exist: {path}")
    if not path.is_file():
        error(f"Snapshot path is not a file: {path}")

    try:
        return load_snapshot(path, config.snapshot_format)
    except SnapshotFormatError as e:
        error(f"Invalid snapshot: {e}")
    except OSError as e:
        error(f"Cannot read snapshot: {e}")


# -----------------------------------------------------------------------------
# Typer Option Factory Functions
# -----------------------------------------------------------------------------
# Typer consumes Option objects when decorating commands, so each command
# needs a fresh instance.


def snapshot_argument() -> Any:
    """Create a Typer Argument for the snapshot file path."""
    return typer.Argument(
        ...,
        help="Snapshot file (JSON or YAML) with tasks and dependencies.",
    )


def format_option() -> Any:
    """Create a Typer Option for --format."""
    return typer.Option(
        None,
        "--format",
        help="Snapshot format: auto, json or yaml (default: auto).",
        envvar="TASKDAG_SNAPSHOT_FORMAT",
    )


def json_option() -> Any:
    """Create a Typer Option for --json."""
    return typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    )


def quiet_option() -> Any:
    """Create a Typer Option for --quiet / -q."""
    return typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output for CI.",
    )
