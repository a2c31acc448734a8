"""Decide which tasks run, in what order, and how failures propagate."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event, RLock
from typing import Optional

from rich.markup import escape

from engage.errors import NotFoundError
from engage.logging import Logger
from engage.manifest import Manifest, Task, effective_interpreter
from engage.process_runner import Outcome, ProcessExecutor
from engage.registry import TaskRegistry
from engage.report import Report, aggregate

__all__ = [
    "Line",
    "Scheduler",
    "SchedulerOptions",
    "Selection",
]

SKIPPED_AFTER_FAILURE = "skipped after earlier failure"
SKIPPED_CANCELLED = "cancelled"

# A group name and the selected tasks of that group, run one after another
Line = tuple[str, list[Task]]


@dataclass(frozen=True)
class Selection:
    """Which tasks a run covers: everything, one group, or one task name."""

    group: Optional[str] = None
    task: Optional[str] = None

    @classmethod
    def all(cls) -> "Selection":
        return cls()

    @classmethod
    def for_group(cls, group: str) -> "Selection":
        return cls(group=group)

    @classmethod
    def for_task(cls, name: str, group: Optional[str] = None) -> "Selection":
        return cls(group=group, task=name)

    def describe(self) -> str:
        if self.task is not None:
            return f"task '{self.task}'" + (f" in group '{self.group}'" if self.group else "")
        if self.group is not None:
            return f"group '{self.group}'"
        return "all tasks"


@dataclass
class SchedulerOptions:
    """
    Run-level policy.

    Attributes:
        jobs: Maximum number of groups running at once (1 = fully sequential)
        fail_fast: Stop starting tasks after the first non-passed outcome
        abort_in_flight: On cancel(), terminate running tasks instead of waiting
        timeout: Per-task timeout for this run; overrides each task's own timeout
        env: Environment overlay for every child; a task's own env wins per key
        cwd: Working directory for every child (defaults to the manifest's directory)
    """

    jobs: int = 1
    fail_fast: bool = False
    abort_in_flight: bool = False
    timeout: Optional[float] = None
    env: dict[str, str] = field(default_factory=dict)
    cwd: Optional[Path] = None

    def __post_init__(self):
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


class Scheduler:
    """
    Drives a selection of tasks through a ProcessExecutor.

    Each selected group forms a line whose tasks run strictly in declaration
    order; lines are spread over at most ``options.jobs`` worker threads.
    A Scheduler is meant for a single run: once cancelled it stays cancelled.
    """

    def __init__(
        self,
        manifest: Manifest,
        executor: ProcessExecutor,
        logger: Logger,
        options: Optional[SchedulerOptions] = None,
    ):
        self.manifest = manifest
        self.registry = TaskRegistry(manifest)
        self.executor = executor
        self.options = options or SchedulerOptions()
        self._logger = logger
        self._stop = Event()
        self._abort = Event()
        self._lock = RLock()
        self._skip_reason = SKIPPED_CANCELLED

    def plan(self, selection: Selection) -> list[Line]:
        """
        Resolve a selection into execution lines.

        Raises:
            NotFoundError: If the group or task is unknown, or nothing is selected
        """
        if selection.task is not None:
            lines: dict[str, list[Task]] = {}
            for task in self.registry.find_tasks(selection.task, selection.group):
                lines.setdefault(task.group, []).append(task)
            return list(lines.items())

        if selection.group is not None:
            return [(selection.group, self.registry.tasks_in_group(selection.group))]

        lines_list = list(self.registry.by_group().items())
        if not lines_list:
            raise NotFoundError("Manifest defines no tasks")
        return lines_list

    def cancel(self, abort_in_flight: Optional[bool] = None) -> None:
        """
        Stop starting new tasks. Safe to call from any thread or a signal handler.

        Args:
            abort_in_flight: Terminate running tasks too; defaults to
                options.abort_in_flight
        """
        if abort_in_flight is None:
            abort_in_flight = self.options.abort_in_flight
        self._halt(SKIPPED_CANCELLED)
        if abort_in_flight:
            self._abort.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _halt(self, reason: str) -> None:
        with self._lock:
            if not self._stop.is_set():
                self._skip_reason = reason
                self._stop.set()

    def _run_task(self, task: Task) -> Outcome:
        env = {**self.options.env, **task.env}
        timeout = self.options.timeout if self.options.timeout is not None else task.timeout
        cwd = self.options.cwd or self.manifest.root

        self._logger.info(f"Running: [cyan]{escape(task.qualified_name)}[/cyan]")
        outcome = self.executor.run(
            task,
            effective_interpreter(self.manifest, task),
            cwd,
            env=env,
            timeout=timeout,
            abort=self._abort,
        )
        self._logger.debug(
            f"[dim]{escape(task.qualified_name)}: {outcome.status.value} in {outcome.duration:.2f}s[/dim]"
        )
        return outcome

    def _run_line(self, line: Line) -> list[Outcome]:
        group, tasks = line
        self._logger.trace(f"[dim]Starting line for group '{group}' ({len(tasks)} tasks)[/dim]")
        outcomes = []
        for task in tasks:
            if self._stop.is_set():
                outcomes.append(Outcome.skipped(task, self._skip_reason))
                continue

            outcome = self._run_task(task)
            outcomes.append(outcome)
            if self.options.fail_fast and not outcome.passed:
                self._halt(SKIPPED_AFTER_FAILURE)
        return outcomes

    def run(self, selection: Optional[Selection] = None) -> Report:
        """
        Run the selected tasks and aggregate their outcomes.

        Outcomes are reported in scheduled order (line order, then declaration
        order), not completion order.

        Raises:
            NotFoundError: If the selection matches nothing; nothing is run
            SpawnError: If a child process could not be created at all
        """
        if selection is None:
            selection = Selection.all()
        lines = self.plan(selection)
        self._logger.debug(
            f"[dim]Scheduling {selection.describe()}: {len(lines)} group(s), "
            f"jobs={self.options.jobs}, fail_fast={self.options.fail_fast}[/dim]"
        )

        start = time.monotonic()
        outcomes: list[Outcome] = []

        if self.options.jobs == 1 or len(lines) == 1:
            for line in lines:
                outcomes.extend(self._run_line(line))
        else:
            workers = min(self.options.jobs, len(lines))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="engage-line") as pool:
                futures: list[Future] = [pool.submit(self._run_line, line) for line in lines]
                try:
                    for future in futures:
                        outcomes.extend(future.result())
                except BaseException:
                    # Let the other lines wind down instead of starting more work
                    self._halt(SKIPPED_CANCELLED)
                    raise

        return aggregate(outcomes, time.monotonic() - start)
