"""Reduce per-task outcomes into a single report and exit code."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from engage.process_runner import Outcome, TaskStatus

__all__ = [
    "EXIT_SUCCESS",
    "EXIT_TASK_FAILURE",
    "EXIT_ENGINE_ERROR",
    "Report",
    "aggregate",
]

EXIT_SUCCESS = 0
EXIT_TASK_FAILURE = 1
EXIT_ENGINE_ERROR = 2


@dataclass(frozen=True)
class Report:
    """All outcomes of one run, in scheduled order."""

    outcomes: tuple[Outcome, ...]
    status: TaskStatus
    exit_code: int
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status is TaskStatus.PASSED

    def counts(self) -> dict[TaskStatus, int]:
        """Number of outcomes per status, every status present."""
        counter = Counter(outcome.status for outcome in self.outcomes)
        return {status: counter.get(status, 0) for status in TaskStatus}

    def failures(self) -> list[Outcome]:
        return [outcome for outcome in self.outcomes if not outcome.passed]


def aggregate(outcomes: Iterable[Outcome], duration: float = 0.0) -> Report:
    """
    Build a Report from outcomes.

    Overall status is PASSED only if there is at least one outcome and every
    outcome passed. Exit codes: EXIT_SUCCESS when passed, EXIT_TASK_FAILURE
    when any task failed or timed out, EXIT_ENGINE_ERROR when the only problem
    is an interpreter that could not be launched (tasks skipped because of it
    do not count), EXIT_TASK_FAILURE otherwise.

    Args:
        outcomes: Outcomes in scheduled order
        duration: Wall-clock duration of the whole run

    Returns:
        The aggregate Report

    Raises:
        ValueError: If outcomes is empty
    """
    ordered = tuple(outcomes)
    if not ordered:
        raise ValueError("Cannot build a report from zero outcomes")

    if all(outcome.passed for outcome in ordered):
        return Report(ordered, TaskStatus.PASSED, EXIT_SUCCESS, duration)

    statuses = {outcome.status for outcome in ordered}
    if statuses & {TaskStatus.FAILED, TaskStatus.TIMED_OUT}:
        exit_code = EXIT_TASK_FAILURE
    elif TaskStatus.EXECUTION_ERROR in statuses:
        exit_code = EXIT_ENGINE_ERROR
    else:
        exit_code = EXIT_TASK_FAILURE

    return Report(ordered, TaskStatus.FAILED, exit_code, duration)
