"""Parse engage manifests into immutable task records."""

from __future__ import annotations

import platform
import tomllib
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

from engage.errors import ManifestError

__all__ = [
    "MANIFEST_FILENAMES",
    "Manifest",
    "Task",
    "default_interpreter",
    "effective_interpreter",
    "find_manifest_file",
    "load_manifest",
    "parse_manifest",
]

MANIFEST_FILENAMES = ("engage.toml", "engage.yaml", "engage.yml")

_ROOT_KEYS = {"interpreter", "task"}
_TASK_KEYS = {"name", "group", "script", "interpreter", "timeout", "env"}


@dataclass(frozen=True)
class Task:
    """A single named, grouped script. Immutable once parsed."""

    name: str
    group: str
    script: str
    interpreter: Optional[tuple[str, ...]] = None
    timeout: Optional[float] = None
    env_items: tuple[tuple[str, str], ...] = ()
    index: int = 0  # Declaration position within the manifest

    @property
    def qualified_name(self) -> str:
        return f"{self.group}/{self.name}"

    @property
    def env(self) -> Mapping[str, str]:
        """Read-only view of the task's environment overlay."""
        return MappingProxyType(dict(self.env_items))


@dataclass(frozen=True)
class Manifest:
    """Represents a parsed manifest: default interpreter plus ordered tasks."""

    interpreter: tuple[str, ...]
    tasks: tuple[Task, ...] = ()
    source: Optional[Path] = None

    @property
    def root(self) -> Path:
        """Directory tasks run in unless told otherwise."""
        if self.source is None:
            return Path.cwd()
        return self.source.parent


def default_interpreter() -> tuple[str, ...]:
    """Get the interpreter used when a manifest does not name one.

    Returns:
        ("cmd", "/c") on Windows, ("bash", "-c") everywhere else
    """
    if platform.system() == "Windows":
        return ("cmd", "/c")
    return ("bash", "-c")


def effective_interpreter(manifest: Manifest, task: Task) -> tuple[str, ...]:
    """The task's own interpreter if it declares one, else the manifest default."""
    if task.interpreter is not None:
        return task.interpreter
    return manifest.interpreter


def find_manifest_file(start_dir: Path | None = None) -> Path | None:
    """Find a manifest file in the current or parent directories.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to the first engage.toml / engage.yaml / engage.yml found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        for filename in MANIFEST_FILENAMES:
            manifest_path = current / filename
            if manifest_path.is_file():
                return manifest_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses mappings with repeated keys."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    None,
                    None,
                    f"duplicate key '{key}'",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _load_document(text: str, fmt: str) -> Any:
    match fmt:
        case "toml":
            try:
                return tomllib.loads(text)
            except tomllib.TOMLDecodeError as e:
                raise ManifestError(f"Invalid TOML: {e}") from e
        case "yaml":
            try:
                data = yaml.load(text, Loader=_UniqueKeyLoader)
            except yaml.YAMLError as e:
                raise ManifestError(f"Invalid YAML: {e}") from e
            return {} if data is None else data
        case _:
            raise ManifestError(f"Unsupported manifest format: {fmt}")


def _parse_interpreter(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not value:
        raise ManifestError(
            f"{where}: 'interpreter' must be a non-empty list of strings"
        )
    for part in value:
        if not isinstance(part, str):
            raise ManifestError(
                f"{where}: 'interpreter' must be a non-empty list of strings, "
                f"got element {part!r}"
            )
    if not value[0].strip():
        raise ManifestError(f"{where}: 'interpreter' program name must not be empty")
    return tuple(value)


def _require_string(task_data: dict[str, Any], key: str, where: str) -> str:
    if key not in task_data:
        raise ManifestError(f"{where} missing required '{key}' field")
    value = task_data[key]
    if not isinstance(value, str):
        raise ManifestError(f"{where}: field '{key}' must be a string")
    return value


def _parse_task(task_data: Any, index: int) -> Task:
    where = f"task #{index + 1}"

    if not isinstance(task_data, dict):
        raise ManifestError(f"{where} must be a table")

    name = _require_string(task_data, "name", where)
    if not name.strip():
        raise ManifestError(f"{where}: 'name' must not be empty")
    where = f"{where} ('{name}')"

    group = _require_string(task_data, "group", where)
    if not group.strip():
        raise ManifestError(f"{where}: 'group' must not be empty")

    script = _require_string(task_data, "script", where)

    unknown = sorted(set(task_data) - _TASK_KEYS)
    if unknown:
        raise ManifestError(f"{where}: unknown field(s): {', '.join(unknown)}")

    interpreter = None
    if "interpreter" in task_data:
        interpreter = _parse_interpreter(task_data["interpreter"], where)

    timeout = None
    if "timeout" in task_data:
        timeout = task_data["timeout"]
        # bool is an int subclass; "timeout = true" is a mistake, not one second
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ManifestError(f"{where}: 'timeout' must be a positive number of seconds")
        timeout = float(timeout)

    env: dict[str, str] = {}
    if "env" in task_data:
        env_data = task_data["env"]
        if not isinstance(env_data, dict):
            raise ManifestError(f"{where}: 'env' must be a table of strings")
        for key, value in env_data.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ManifestError(
                    f"{where}: 'env' entry {key!r} must map a string to a string"
                )
            env[key] = value

    return Task(
        name=name,
        group=group,
        script=script,
        interpreter=interpreter,
        timeout=timeout,
        env_items=tuple(env.items()),
        index=index,
    )


def parse_manifest(text: str, fmt: str = "toml", source: Path | None = None) -> Manifest:
    """Parse manifest text.

    Parsing is pure: the same text always produces an equal Manifest with
    tasks in declaration order.

    Args:
        text: Manifest source text
        fmt: "toml" or "yaml"
        source: File the text came from, if any

    Returns:
        The parsed Manifest

    Raises:
        ManifestError: If the document or any task is malformed
    """
    data = _load_document(text, fmt)

    if not isinstance(data, dict):
        raise ManifestError("Manifest root must be a table")

    unknown = sorted(set(data) - _ROOT_KEYS)
    if unknown:
        raise ManifestError(f"Unknown root-level field(s): {', '.join(unknown)}")

    if "interpreter" in data:
        interpreter = _parse_interpreter(data["interpreter"], "manifest")
    else:
        interpreter = default_interpreter()

    tasks_data = data.get("task", [])
    if not isinstance(tasks_data, list):
        raise ManifestError("'task' must be an array of tables")

    tasks = tuple(_parse_task(task_data, i) for i, task_data in enumerate(tasks_data))

    return Manifest(interpreter=interpreter, tasks=tasks, source=source)


def load_manifest(path: Path) -> Manifest:
    """Read and parse a manifest file, choosing the format from its suffix.

    Raises:
        ManifestError: If the file cannot be read or is malformed
    """
    suffix = path.suffix.lower()
    if suffix == ".toml":
        fmt = "toml"
    elif suffix in (".yaml", ".yml"):
        fmt = "yaml"
    else:
        raise ManifestError(
            f"Cannot determine manifest format of '{path}' (expected .toml, .yaml or .yml)"
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Error reading manifest '{path}': {e}") from e

    try:
        return parse_manifest(text, fmt, source=path.resolve())
    except ManifestError as e:
        raise ManifestError(f"{path}: {e}") from e
