"""Run one task's script as a child process and record its outcome.

The executor never raises for script-level problems: non-zero exits,
timeouts and interpreters that do not exist all become an Outcome. Only a
failure to create a process at all (the OS refusing to fork, for instance)
escapes as SpawnError.
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Event, Thread
from typing import Any, Mapping, Optional, TextIO

from rich.markup import escape

from engage.errors import SpawnError
from engage.logging import Logger
from engage.manifest import Task

__all__ = [
    "Outcome",
    "ProcessExecutor",
    "TaskOutputTypes",
    "TaskStatus",
    "build_child_env",
    "stream_output",
    "terminate_process",
]


class TaskStatus(Enum):
    """Result of attempting one task."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    EXECUTION_ERROR = "execution_error"


class TaskOutputTypes(Enum):
    """
    Which child streams are echoed live while a task runs.

    Both streams are always captured for the report regardless of this value.
    """

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


@dataclass(frozen=True)
class Outcome:
    """The recorded result of attempting one task."""

    task_name: str
    group: str
    status: TaskStatus
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    message: str = ""
    index: int = 0

    @property
    def passed(self) -> bool:
        return self.status is TaskStatus.PASSED

    @classmethod
    def skipped(cls, task: Task, message: str) -> "Outcome":
        return cls(
            task_name=task.name,
            group=task.group,
            status=TaskStatus.SKIPPED,
            message=message,
            index=task.index,
        )


def build_child_env(*overlays: Optional[Mapping[str, str]]) -> dict[str, str]:
    """
    Build the environment for one child process.

    Starts from a copy of the current process environment and applies each
    overlay in turn, later overlays winning. os.environ itself is not touched.
    """
    env = dict(os.environ)
    for overlay in overlays:
        if overlay:
            env.update(overlay)
    return env


def stream_output(pipe: Any, sink: list[str], target: Optional[TextIO]) -> None:
    """
    Read a pipe to exhaustion, collecting every line into sink.

    When target is given each line is also echoed to it as it arrives.
    A pipe closed underneath us (process killed, stream closed after a join
    timeout) ends the read quietly; whatever was read so far is kept.

    Args:
        pipe: Input pipe to read from
        sink: List receiving the captured lines
        target: Optional stream to echo lines to
    """
    if pipe:
        try:
            for line in pipe:
                sink.append(line)
                if target is not None:
                    target.write(line)
                    target.flush()
        except (OSError, ValueError):
            pass


def terminate_process(process: subprocess.Popen, grace_period: float = 2.0) -> None:
    """
    Stop a child and everything it started.

    On POSIX the child leads its own session, so the whole process group gets
    SIGTERM, then SIGKILL if it is still alive after grace_period. Elsewhere
    Popen.kill() is used.
    """
    if process.poll() is not None:
        return

    if os.name != "posix":
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        process.wait()
        return

    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(process.pid, signal.SIGTERM)

    try:
        process.wait(timeout=grace_period)
    except subprocess.TimeoutExpired:
        pass

    # Descendants may outlive the leader, so the group is killed unconditionally
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(process.pid, signal.SIGKILL)
    process.wait()


class ProcessExecutor:
    """
    Runs tasks as ``[*interpreter, script]`` child processes.

    One call to run() spawns exactly one child. stdout and stderr are captured
    independently by reader threads and optionally echoed according to
    ``task_output``.
    """

    def __init__(
        self,
        logger: Logger,
        task_output: TaskOutputTypes = TaskOutputTypes.NONE,
        poll_interval: float = 0.05,
        grace_period: float = 2.0,
        join_timeout: float = 1.0,
    ) -> None:
        self._logger = logger
        self._task_output = task_output
        self._poll_interval = poll_interval
        self._grace_period = grace_period
        self._join_timeout = join_timeout

    def _echo_targets(self) -> tuple[Optional[TextIO], Optional[TextIO]]:
        match self._task_output:
            case TaskOutputTypes.ALL:
                return sys.stdout, sys.stderr
            case TaskOutputTypes.OUT:
                return sys.stdout, None
            case TaskOutputTypes.ERR:
                return None, sys.stderr
            case _:
                return None, None

    def run(
        self,
        task: Task,
        interpreter: tuple[str, ...],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        abort: Optional[Event] = None,
    ) -> Outcome:
        """
        Execute one task and wait for it to finish.

        Args:
            task: Task whose script is run
            interpreter: Effective interpreter command vector
            cwd: Working directory for the child
            env: Environment overlay applied on top of the inherited environment
            timeout: Maximum wall-clock seconds, None for unbounded
            abort: When set while the child runs, the child is terminated

        Returns:
            Outcome describing what happened

        Raises:
            SpawnError: If the OS could not create the process
        """
        cmd = [*interpreter, task.script]
        details = f"{task.qualified_name}: interpreter={list(interpreter)} cwd={cwd}"
        if env:
            details += f" env={sorted(env)}"
        self._logger.debug(f"[dim]{escape(details)}[/dim]")

        start = time.monotonic()
        if not Path(cwd).is_dir():
            return Outcome(
                task_name=task.name,
                group=task.group,
                status=TaskStatus.EXECUTION_ERROR,
                message=f"Working directory '{cwd}' does not exist or is not a directory",
                index=task.index,
            )

        try:
            process = subprocess.Popen(
                cmd,
                cwd=cwd,
                env=build_child_env(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=(os.name == "posix"),
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            return Outcome(
                task_name=task.name,
                group=task.group,
                status=TaskStatus.EXECUTION_ERROR,
                duration=time.monotonic() - start,
                message=f"Cannot launch interpreter '{interpreter[0]}': {e.strerror or e}",
                index=task.index,
            )
        except OSError as e:
            raise SpawnError(f"Failed to spawn process for task '{task.qualified_name}': {e}") from e

        out_target, err_target = self._echo_targets()
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        threads = [
            Thread(
                target=stream_output,
                args=(process.stdout, stdout_lines, out_target),
                name=f"stdout-{task.qualified_name}",
                daemon=True,
            ),
            Thread(
                target=stream_output,
                args=(process.stderr, stderr_lines, err_target),
                name=f"stderr-{task.qualified_name}",
                daemon=True,
            ),
        ]
        for thread in threads:
            thread.start()

        timed_out = False
        aborted = False
        deadline = start + timeout if timeout is not None else None
        while True:
            wait_for = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    break
                wait_for = min(wait_for, remaining)
            try:
                process.wait(timeout=wait_for)
                break
            except subprocess.TimeoutExpired:
                if abort is not None and abort.is_set():
                    aborted = True
                    break

        if timed_out or aborted:
            terminate_process(process, self._grace_period)

        for thread, pipe in zip(threads, (process.stdout, process.stderr)):
            thread.join(timeout=self._join_timeout)
            if thread.is_alive():
                # A background descendant still holds the pipe; the daemon
                # reader is abandoned and the pipe left open under it
                self._logger.warn(
                    f"[yellow]Output reader '{thread.name}' did not finish within "
                    f"{self._join_timeout} seconds[/yellow]"
                )
            elif pipe:
                with contextlib.suppress(OSError):
                    pipe.close()

        duration = time.monotonic() - start
        stdout = "".join(stdout_lines)
        stderr = "".join(stderr_lines)

        if timed_out:
            return Outcome(
                task_name=task.name,
                group=task.group,
                status=TaskStatus.TIMED_OUT,
                stdout=stdout,
                stderr=stderr,
                duration=duration,
                message=f"timed out after {timeout:g}s",
                index=task.index,
            )

        if aborted:
            return Outcome(
                task_name=task.name,
                group=task.group,
                status=TaskStatus.FAILED,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
                duration=duration,
                message="terminated by cancellation",
                index=task.index,
            )

        returncode = process.returncode
        return Outcome(
            task_name=task.name,
            group=task.group,
            status=TaskStatus.PASSED if returncode == 0 else TaskStatus.FAILED,
            exit_code=returncode,
            stdout=stdout,
            stderr=stderr,
            duration=duration,
            message="" if returncode == 0 else f"exited with code {returncode}",
            index=task.index,
        )
