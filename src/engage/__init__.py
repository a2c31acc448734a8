"""engage - run grouped, shell-backed checks declared in a manifest."""

__version__ = "0.1.0"

from engage.errors import ConfigError, EngageError, ManifestError, NotFoundError, SpawnError
from engage.manifest import Manifest, Task, find_manifest_file, load_manifest, parse_manifest
from engage.process_runner import Outcome, ProcessExecutor, TaskOutputTypes, TaskStatus
from engage.registry import TaskRegistry
from engage.report import EXIT_ENGINE_ERROR, EXIT_SUCCESS, EXIT_TASK_FAILURE, Report, aggregate
from engage.scheduler import Scheduler, SchedulerOptions, Selection

__all__ = [
    "__version__",
    "ConfigError",
    "EngageError",
    "ManifestError",
    "NotFoundError",
    "SpawnError",
    "Manifest",
    "Task",
    "find_manifest_file",
    "load_manifest",
    "parse_manifest",
    "Outcome",
    "ProcessExecutor",
    "TaskOutputTypes",
    "TaskStatus",
    "TaskRegistry",
    "EXIT_ENGINE_ERROR",
    "EXIT_SUCCESS",
    "EXIT_TASK_FAILURE",
    "Report",
    "aggregate",
    "Scheduler",
    "SchedulerOptions",
    "Selection",
]
