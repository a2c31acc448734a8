"""
Configuration file parsing for run defaults.

Settings are read from up to three YAML files, lowest precedence first:
machine, user, project. Command-line flags override all of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from engage.errors import ConfigError

__all__ = [
    "PROJECT_CONFIG_FILENAME",
    "RunConfig",
    "find_project_config",
    "get_machine_config_path",
    "get_user_config_path",
    "load_config",
    "parse_config_file",
]

PROJECT_CONFIG_FILENAME = ".engage-config.yml"

_CHOICES = {
    "task_output": ("all", "out", "err", "none"),
    "show_output": ("failed", "all", "none"),
    "format": ("text", "json", "yaml"),
}


@dataclass(frozen=True)
class RunConfig:
    """
    Run defaults from configuration files.

    None means "not set here"; a lower-precedence file or the built-in default
    applies instead.
    """

    jobs: Optional[int] = None
    fail_fast: Optional[bool] = None
    abort_in_flight: Optional[bool] = None
    timeout: Optional[float] = None
    task_output: Optional[str] = None
    show_output: Optional[str] = None
    format: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)

    def merged_with(self, other: Optional["RunConfig"]) -> "RunConfig":
        """
        Layer other on top of self.

        Scalar settings from other win when set; env mappings are merged per key
        with other's values winning.
        """
        if other is None:
            return self
        changes: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "env":
                continue
            value = getattr(other, f.name)
            if value is not None:
                changes[f.name] = value
        changes["env"] = {**self.env, **other.env}
        return replace(self, **changes)


def get_machine_config_path() -> Path:
    """
    Get the path to the machine-level (system-wide) configuration file.

    Uses platformdirs to determine the appropriate site config directory
    for the current platform, then appends 'engage/config.yml'.

    Returns:
        Path to the machine config file (may not exist)
    """
    config_dir = Path(platformdirs.site_config_dir("engage"))
    return config_dir / "config.yml"


def get_user_config_path() -> Path:
    """
    Get the path to the user-level configuration file.

    Returns:
        Path to the user config file (may not exist)
    """
    config_dir: Path = Path(platformdirs.user_config_dir("engage"))
    return config_dir / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """
    Walk up the directory tree from start_dir to find .engage-config.yml.

    Args:
        start_dir: Directory to start searching from

    Returns:
        Path to .engage-config.yml if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() can raise OSError on invalid paths or RuntimeError on symlink loops
        return None

    while True:
        try:
            config_path = current / PROJECT_CONFIG_FILENAME
            if config_path.is_file():
                return config_path
        except OSError:
            # Unreadable directory; keep walking up
            pass

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _error(path: Path, message: str) -> ConfigError:
    return ConfigError(f"Error in config file '{path}': {message}")


def parse_config_file(path: Path) -> Optional[RunConfig]:
    """
    Parse an engage configuration file.

    Only the top-level 'run' mapping is read. Missing files, empty files and
    files without a 'run' key are valid and return None.

    Args:
        path: Path to the configuration file

    Returns:
        RunConfig with the settings present in the file, or None

    Raises:
        ConfigError: If the file is unreadable, is not valid YAML, or holds
                     settings of the wrong type

    Example:

        ```yaml
        run:
          jobs: 4
          fail_fast: true
          timeout: 900
          env:
            DIRENV_DEVSHELL: all-features
        ```
    """
    if not path.exists():
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    if not content.strip():
        return None

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return None

    if not isinstance(data, dict):
        raise _error(path, "top level must be a mapping")

    if "run" not in data:
        return None

    run_data = data["run"]
    if run_data is None:
        return None
    if not isinstance(run_data, dict):
        raise _error(path, "'run' must be a mapping")

    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(str(key) for key in run_data if key not in known)
    if unknown:
        raise _error(path, f"unknown setting(s) under 'run': {', '.join(unknown)}")

    jobs = run_data.get("jobs")
    if jobs is not None and (isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1):
        raise _error(path, "Field 'jobs' must be a positive integer")

    for flag in ("fail_fast", "abort_in_flight"):
        value = run_data.get(flag)
        if value is not None and not isinstance(value, bool):
            raise _error(path, f"Field '{flag}' must be a boolean")

    timeout = run_data.get("timeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise _error(path, "Field 'timeout' must be a positive number of seconds")
        timeout = float(timeout)

    for key, choices in _CHOICES.items():
        value = run_data.get(key)
        if value is not None and value not in choices:
            raise _error(path, f"Field '{key}' must be one of: {', '.join(choices)}")

    env = run_data.get("env", {}) or {}
    if not isinstance(env, dict):
        raise _error(path, "Field 'env' must be a dictionary")
    for key, value in env.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise _error(path, f"Field 'env' entry {key!r} must map a string to a string")

    return RunConfig(
        jobs=jobs,
        fail_fast=run_data.get("fail_fast"),
        abort_in_flight=run_data.get("abort_in_flight"),
        timeout=timeout,
        task_output=run_data.get("task_output"),
        show_output=run_data.get("show_output"),
        format=run_data.get("format"),
        env=dict(env),
    )


def load_config(project_dir: Path) -> RunConfig:
    """
    Load and merge machine, user and project configuration.

    Args:
        project_dir: Directory the project config search starts from

    Returns:
        The merged RunConfig (all None when no file sets anything)

    Raises:
        ConfigError: If any of the files is invalid
    """
    config = RunConfig()
    config = config.merged_with(parse_config_file(get_machine_config_path()))
    config = config.merged_with(parse_config_file(get_user_config_path()))
    project_config = find_project_config(project_dir)
    if project_config is not None:
        config = config.merged_with(parse_config_file(project_config))
    return config
