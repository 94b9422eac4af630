"""Configuration management for the scheduling engine.

Handles configuration loading from multiple sources with precedence:
CLI args > environment variables > .taskdagrc > pyproject.toml > defaults
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from taskdag.models import DEPENDENCY_TYPES, TASK_STATUSES

SNAPSHOT_FORMATS = ("auto", "json", "yaml")


@dataclass
class EngineConfig:
    """Configuration for the scheduling engine and CLI.

    Attributes:
        float_tolerance: Float values this close to zero count as zero
            (default: 1e-9)
        done_status: Task status that satisfies finish_to_start edges
            (default: "done")
        default_dependency_type: Type used when a request names none
            (default: "finish_to_start")
        deadline_seconds: Time budget per computation; None for no budget
            (default: None)
        snapshot_format: Snapshot file format, "auto" picks by extension
            (default: "auto")
    """

    float_tolerance: float = 1e-9
    done_status: str = "done"
    default_dependency_type: str = "finish_to_start"
    deadline_seconds: float | None = None
    snapshot_format: str = "auto"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if isinstance(self.float_tolerance, bool) or not isinstance(self.float_tolerance, (int, float)):
            raise ValueError("float_tolerance must be a number")
        if self.float_tolerance < 0:
            raise ValueError("float_tolerance cannot be negative")

        if self.done_status not in TASK_STATUSES:
            raise ValueError(f"done_status must be one of: {', '.join(TASK_STATUSES)}")

        if self.default_dependency_type not in DEPENDENCY_TYPES:
            raise ValueError(
                f"default_dependency_type must be one of: {', '.join(DEPENDENCY_TYPES)}"
            )

        if self.deadline_seconds is not None:
            if isinstance(self.deadline_seconds, bool) or not isinstance(
                self.deadline_seconds, (int, float)
            ):
                raise ValueError("deadline_seconds must be a number")
            if self.deadline_seconds <= 0:
                raise ValueError("deadline_seconds must be positive")

        if self.snapshot_format not in SNAPSHOT_FORMATS:
            raise ValueError(f"snapshot_format must be one of: {', '.join(SNAPSHOT_FORMATS)}")


def _get_config_field_names() -> set[str]:
    """Get the set of valid configuration field names.

    Returns:
        Set of field names from EngineConfig.
    """
    return {f.name for f in fields(EngineConfig)}


def find_config_file(filename: str = ".taskdagrc", start_dir: Path | None = None) -> Path | None:
    """Find a configuration file by traversing up the directory tree.

    Args:
        filename: Name of the config file to find.
        start_dir: Directory to start searching from. Defaults to current directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        config_path = current / filename
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    with open(path, "rb") as f:
        result: dict[str, Any] = tomllib.load(f)
        return result


def _load_from_taskdagrc(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from a .taskdagrc file.

    Returns:
        Configuration from .taskdagrc, or empty dict if not found or unreadable.
    """
    config_path = find_config_file(".taskdagrc", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        valid_fields = _get_config_field_names()
        return {k: v for k, v in data.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _load_from_pyproject(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from the pyproject.toml [tool.taskdag] section.

    Returns:
        Configuration from pyproject.toml, or empty dict if not found.
    """
    config_path = find_config_file("pyproject.toml", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        section = data.get("tool", {}).get("taskdag", {})
        valid_fields = _get_config_field_names()
        return {k: v for k, v in section.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _parse_number(env_var: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{env_var} must be a number, got: {value!r}") from None


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables.

    Variables are prefixed with TASKDAG_ and use uppercase names, for
    example TASKDAG_FLOAT_TOLERANCE or TASKDAG_DEADLINE_SECONDS.

    Raises:
        ValueError: If a numeric variable does not parse.
    """
    env_mapping = {
        "TASKDAG_FLOAT_TOLERANCE": "float_tolerance",
        "TASKDAG_DONE_STATUS": "done_status",
        "TASKDAG_DEFAULT_DEPENDENCY_TYPE": "default_dependency_type",
        "TASKDAG_DEADLINE_SECONDS": "deadline_seconds",
        "TASKDAG_SNAPSHOT_FORMAT": "snapshot_format",
    }
    numeric = {"float_tolerance", "deadline_seconds"}

    result: dict[str, Any] = {}
    for env_var, config_key in env_mapping.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        result[config_key] = _parse_number(env_var, value) if config_key in numeric else value

    return result


def _merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge configuration dictionaries; later ones take precedence."""
    result: dict[str, Any] = {}
    for config in configs:
        for key, value in config.items():
            if value is not None:
                result[key] = value
    return result


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    start_dir: Path | None = None,
) -> EngineConfig:
    """Load configuration with full precedence chain.

    Precedence (highest to lowest):
    1. CLI arguments (cli_overrides)
    2. Environment variables (TASKDAG_*)
    3. .taskdagrc file
    4. pyproject.toml [tool.taskdag] section
    5. Default values

    Args:
        cli_overrides: Configuration overrides from CLI arguments.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved EngineConfig instance.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    pyproject_config = _load_from_pyproject(start_dir)
    rc_config = _load_from_taskdagrc(start_dir)
    env_config = _load_from_env()
    cli_config = cli_overrides or {}

    valid_fields = _get_config_field_names()
    cli_config = {k: v for k, v in cli_config.items() if k in valid_fields and v is not None}

    merged = _merge_configs(
        pyproject_config,
        rc_config,
        env_config,
        cli_config,
    )

    return EngineConfig(**merged)
