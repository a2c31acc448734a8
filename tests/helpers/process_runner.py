"""Test helpers for ProcessExecutor mocking."""

from pathlib import Path
from threading import Event, Lock
from typing import Callable, Mapping, Optional

from engage.manifest import Task
from engage.process_runner import Outcome, TaskStatus


class MockProcessExecutor:
    """
    Stand-in for ProcessExecutor.

    Records every run() call and returns an Outcome built from a per-task exit
    code (default 0). Exit code None produces an EXECUTION_ERROR outcome.
    """

    def __init__(
        self,
        exit_codes: Optional[dict[str, Optional[int]]] = None,
        on_run: Optional[Callable[[Task], None]] = None,
    ):
        """
        Args:
            exit_codes: Exit code per task name or "group/name"
            on_run: Called with the task before the outcome is produced
        """
        self.exit_codes = exit_codes or {}
        self.on_run = on_run
        self.calls: list[tuple[Task, tuple[str, ...], Path, dict, Optional[float], Optional[Event]]] = []
        self._lock = Lock()

    def _exit_code_for(self, task: Task) -> Optional[int]:
        if task.qualified_name in self.exit_codes:
            return self.exit_codes[task.qualified_name]
        return self.exit_codes.get(task.name, 0)

    def run(
        self,
        task: Task,
        interpreter: tuple[str, ...],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        abort: Optional[Event] = None,
    ) -> Outcome:
        with self._lock:
            self.calls.append((task, interpreter, cwd, dict(env or {}), timeout, abort))

        if self.on_run is not None:
            self.on_run(task)

        exit_code = self._exit_code_for(task)
        if exit_code is None:
            status = TaskStatus.EXECUTION_ERROR
        elif exit_code == 0:
            status = TaskStatus.PASSED
        else:
            status = TaskStatus.FAILED

        return Outcome(
            task_name=task.name,
            group=task.group,
            status=status,
            exit_code=exit_code,
            index=task.index,
        )

    def ran(self) -> list[str]:
        """Qualified names of the tasks run, in call order."""
        return [call[0].qualified_name for call in self.calls]
