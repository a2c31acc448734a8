"""Run command implementation."""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass, field
from typing import Optional

import typer

from engage.cli_commands import exit_engine_error
from engage.errors import NotFoundError, SpawnError
from engage.logging import Logger
from engage.manifest import Manifest
from engage.process_runner import ProcessExecutor, TaskOutputTypes
from engage.report import Report
from engage.reporter import ReportFormat, ShowOutput, render_json, render_text, render_yaml
from engage.scheduler import Scheduler, SchedulerOptions, Selection


@dataclass
class RunSettings:
    """Effective settings for one run, after config files and flags are merged."""

    jobs: int = 1
    fail_fast: bool = False
    abort_in_flight: bool = False
    timeout: Optional[float] = None
    env: dict[str, str] = field(default_factory=dict)
    task_output: TaskOutputTypes = TaskOutputTypes.NONE
    show_output: ShowOutput = ShowOutput.FAILED
    format: ReportFormat = ReportFormat.TEXT


def _install_interrupt_handler(scheduler: Scheduler, logger: Logger):
    """
    Route Ctrl-C to the scheduler.

    The first interrupt stops new tasks from starting; the second also
    terminates the ones still running.

    Returns:
        The previous SIGINT handler, or None if no handler was installed
    """
    if threading.current_thread() is not threading.main_thread():
        return None

    presses = 0

    def handler(signum, frame):
        nonlocal presses
        presses += 1
        if presses == 1 and not scheduler.options.abort_in_flight:
            logger.warn(
                "[yellow]Interrupted: waiting for running tasks, skipping the rest "
                "(press Ctrl-C again to abort them)[/yellow]"
            )
            scheduler.cancel()
        else:
            logger.warn("[yellow]Interrupted: terminating running tasks[/yellow]")
            scheduler.cancel(abort_in_flight=True)

    return signal.signal(signal.SIGINT, handler)


def _emit_report(logger: Logger, report: Report, settings: RunSettings) -> None:
    match settings.format:
        case ReportFormat.JSON:
            typer.echo(render_json(report))
        case ReportFormat.YAML:
            typer.echo(render_yaml(report), nl=False)
        case _:
            render_text(report, logger, settings.show_output)


def run_tasks(logger: Logger, manifest: Manifest, selection: Selection, settings: RunSettings) -> None:
    """
    Run the selected tasks, render the report and exit with its code.

    Args:
        logger: Logger interface for output
        manifest: Parsed manifest
        selection: Which tasks to run
        settings: Effective run settings

    Raises:
        typer.Exit: Always; carries the report's exit code, or the engine
            error code when the selection is unknown or a process cannot spawn
    """
    executor = ProcessExecutor(logger, task_output=settings.task_output)
    scheduler = Scheduler(
        manifest,
        executor,
        logger,
        SchedulerOptions(
            jobs=settings.jobs,
            fail_fast=settings.fail_fast,
            abort_in_flight=settings.abort_in_flight,
            timeout=settings.timeout,
            env=settings.env,
        ),
    )

    previous_handler = _install_interrupt_handler(scheduler, logger)
    try:
        report = scheduler.run(selection)
    except (NotFoundError, SpawnError) as e:
        raise exit_engine_error(logger, str(e))
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    _emit_report(logger, report, settings)
    raise typer.Exit(report.exit_code)
