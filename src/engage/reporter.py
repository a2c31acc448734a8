"""Render a Report for people and for machines.

Nothing here affects the report's status or exit code.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any

import yaml
from rich.markup import escape
from rich.table import Table

from engage.logging import Logger
from engage.process_runner import Outcome, TaskStatus
from engage.report import Report

__all__ = [
    "ReportFormat",
    "ShowOutput",
    "render_json",
    "render_text",
    "render_yaml",
    "report_to_dict",
    "status_symbol",
]


class ReportFormat(Enum):
    TEXT = "text"
    JSON = "json"
    YAML = "yaml"


class ShowOutput(Enum):
    """Whose captured output the text summary includes."""

    FAILED = "failed"
    ALL = "all"
    NONE = "none"


_STATUS_STYLES = {
    TaskStatus.PASSED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.TIMED_OUT: "red",
    TaskStatus.EXECUTION_ERROR: "magenta",
    TaskStatus.SKIPPED: "yellow",
}

_STATUS_LABELS = {
    TaskStatus.PASSED: "passed",
    TaskStatus.FAILED: "failed",
    TaskStatus.TIMED_OUT: "timed out",
    TaskStatus.EXECUTION_ERROR: "error",
    TaskStatus.SKIPPED: "skipped",
}


def _supports_unicode() -> bool:
    """
    Check if the terminal supports Unicode characters.

    Returns:
    True if terminal supports UTF-8, False otherwise
    """
    # Hard stop: classic Windows console (conhost)
    if os.name == "nt" and "WT_SESSION" not in os.environ:
        return False

    encoding = sys.stdout.encoding
    if not encoding:
        return False

    try:
        "✓✗–".encode(encoding)
        return True
    except UnicodeEncodeError:
        return False


def status_symbol(status: TaskStatus) -> str:
    """
    Get the marker printed in front of a task line.

    Unicode tick/cross where the terminal can show them, bracketed words otherwise.
    """
    unicode = _supports_unicode()
    match status:
        case TaskStatus.PASSED:
            return "✓" if unicode else "[ OK ]"
        case TaskStatus.SKIPPED:
            return "–" if unicode else "[SKIP]"
        case _:
            return "✗" if unicode else "[FAIL]"


def _outcome_detail(outcome: Outcome) -> str:
    if outcome.status is TaskStatus.PASSED:
        return ""
    if outcome.message:
        return outcome.message
    if outcome.exit_code is not None:
        return f"exited with code {outcome.exit_code}"
    return ""


def _render_captured(logger: Logger, outcome: Outcome) -> None:
    title = f"{outcome.group}/{outcome.task_name}"
    style = _STATUS_STYLES[outcome.status]
    logger.info(f"\n[bold {style}]--- {escape(title)} ---[/bold {style}]")
    if not outcome.stdout and not outcome.stderr:
        logger.info("[dim](no output)[/dim]")
        return
    if outcome.stdout:
        logger.info("[bold]stdout:[/bold]")
        logger.info(outcome.stdout.rstrip("\n"), markup=False, highlight=False)
    if outcome.stderr:
        logger.info("[bold]stderr:[/bold]")
        logger.info(outcome.stderr.rstrip("\n"), markup=False, highlight=False)


def render_text(report: Report, logger: Logger, show_output: ShowOutput = ShowOutput.FAILED) -> None:
    """
    Print a human-readable summary.

    One line per task in scheduled order, the captured output of failed tasks
    (or of every task, or none, depending on show_output), then totals.

    Args:
        report: Report to render
        logger: Where to print
        show_output: Which tasks' captured output to include
    """
    for outcome in report.outcomes:
        if show_output is ShowOutput.NONE or outcome.status is TaskStatus.SKIPPED:
            continue
        if show_output is ShowOutput.ALL or not outcome.passed:
            _render_captured(logger, outcome)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Status", no_wrap=True)
    table.add_column("Task", style="bold cyan", no_wrap=True)
    table.add_column("Time", justify="right", style="dim", no_wrap=True)
    table.add_column("Detail", style="white", max_width=80)

    for outcome in report.outcomes:
        style = _STATUS_STYLES[outcome.status]
        table.add_row(
            f"[{style}]{escape(status_symbol(outcome.status))}[/{style}]",
            escape(f"{outcome.group}/{outcome.task_name}"),
            "" if outcome.status is TaskStatus.SKIPPED else f"{outcome.duration:.2f}s",
            escape(_outcome_detail(outcome)),
        )

    logger.info("")
    logger.info(table)

    counts = report.counts()
    parts = [
        f"[{_STATUS_STYLES[status]}]{count} {_STATUS_LABELS[status]}[/{_STATUS_STYLES[status]}]"
        for status, count in counts.items()
        if count
    ]
    total = len(report.outcomes)
    summary = f"{total} task{'s' if total != 1 else ''}: " + ", ".join(parts)
    summary += f" [dim]in {report.duration:.2f}s[/dim]"

    if report.passed:
        logger.info(f"\n[green]{escape(status_symbol(TaskStatus.PASSED))} {summary}[/green]")
    else:
        logger.error(f"\n[red]{escape(status_symbol(TaskStatus.FAILED))}[/red] {summary}")


def report_to_dict(report: Report) -> dict[str, Any]:
    """Structured form shared by the JSON and YAML renderers."""
    return {
        "status": report.status.value,
        "exit_code": report.exit_code,
        "duration": round(report.duration, 3),
        "totals": {status.value: count for status, count in report.counts().items()},
        "outcomes": [
            {
                "name": outcome.task_name,
                "group": outcome.group,
                "status": outcome.status.value,
                "exit_code": outcome.exit_code,
                "duration": round(outcome.duration, 3),
                "message": outcome.message,
                "stdout": outcome.stdout,
                "stderr": outcome.stderr,
            }
            for outcome in report.outcomes
        ],
    }


def render_json(report: Report) -> str:
    return json.dumps(report_to_dict(report), indent=2)


def render_yaml(report: Report) -> str:
    return yaml.safe_dump(report_to_dict(report), default_flow_style=False, sort_keys=False)
