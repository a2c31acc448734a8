"""Command-line interface for engage."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from engage import __version__
from engage.cli_commands import exit_engine_error, manifest_names
from engage.cli_commands.list_tasks import list_tasks
from engage.cli_commands.run_tasks import RunSettings, run_tasks
from engage.cli_commands.show_task import show_task
from engage.config import RunConfig, load_config
from engage.console_logger import ConsoleLogger
from engage.errors import ConfigError, ManifestError, NotFoundError
from engage.logging import Logger, parse_log_level
from engage.manifest import Manifest, find_manifest_file, load_manifest
from engage.process_runner import TaskOutputTypes
from engage.reporter import ReportFormat, ShowOutput
from engage.scheduler import Selection

app = typer.Typer(
    help="engage - run the grouped checks declared in an engage manifest",
    add_completion=False,
    no_args_is_help=False,
)
console = Console()
err_console = Console(stderr=True)


def _parse_env_overlay(logger: Logger, entries: list[str]) -> dict[str, str]:
    """
    Parse repeated ``--env KEY=VALUE`` values.

    Raises:
        typer.Exit: If an entry has no '=' or an empty key
    """
    overlay: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise exit_engine_error(logger, f"Invalid --env value '{entry}' (expected KEY=VALUE)")
        overlay[key] = value
    return overlay


def _load(logger: Logger, manifest_path: Optional[Path]) -> Manifest:
    if manifest_path is None:
        manifest_path = find_manifest_file()
        if manifest_path is None:
            raise exit_engine_error(logger, f"No manifest file found ({manifest_names()})")
    elif not manifest_path.is_file():
        raise exit_engine_error(logger, f"Manifest file not found: {manifest_path}")

    try:
        manifest = load_manifest(manifest_path)
    except ManifestError as e:
        raise exit_engine_error(logger, f"Error parsing manifest: {e}")

    logger.debug(f"[dim]Using manifest {manifest.source}[/dim]")
    return manifest


def _resolve_settings(
    config: RunConfig,
    env_overlay: dict[str, str],
    jobs: Optional[int],
    fail_fast: Optional[bool],
    abort_in_flight: Optional[bool],
    timeout: Optional[float],
    task_output: Optional[TaskOutputTypes],
    show_output: Optional[ShowOutput],
    output_format: Optional[ReportFormat],
) -> RunSettings:
    """Command-line flags win over configuration files, which win over defaults."""

    def pick(flag, configured, default):
        if flag is not None:
            return flag
        if configured is not None:
            return configured
        return default

    return RunSettings(
        jobs=pick(jobs, config.jobs, 1),
        fail_fast=pick(fail_fast, config.fail_fast, False),
        abort_in_flight=pick(abort_in_flight, config.abort_in_flight, False),
        timeout=pick(timeout, config.timeout, None),
        env={**config.env, **env_overlay},
        task_output=pick(
            task_output,
            TaskOutputTypes(config.task_output) if config.task_output else None,
            TaskOutputTypes.NONE,
        ),
        show_output=pick(
            show_output,
            ShowOutput(config.show_output) if config.show_output else None,
            ShowOutput.FAILED,
        ),
        format=pick(
            output_format,
            ReportFormat(config.format) if config.format else None,
            ReportFormat.TEXT,
        ),
    )


def _selection(group: Optional[str], task: Optional[str], task_name: Optional[str]) -> Selection:
    if task is not None:
        if task_name is not None and task_name != task:
            raise typer.BadParameter(
                "give the task either as the second argument or with --task, not both"
            )
        return Selection.for_task(task, group)
    if task_name is not None:
        return Selection.for_task(task_name, group)
    if group is not None:
        return Selection.for_group(group)
    return Selection.all()


@app.command()
def main(
    group: Optional[str] = typer.Argument(None, help="Run only the tasks of this group"),
    task: Optional[str] = typer.Argument(None, help="Run only this task of GROUP"),
    task_name: Optional[str] = typer.Option(
        None, "--task", "-t", help="Run every task with this name (combine with GROUP to narrow)"
    ),
    manifest_path: Optional[Path] = typer.Option(
        None, "--manifest", "-f", help="Manifest file (default: search upwards for engage.toml)"
    ),
    list_only: bool = typer.Option(False, "--list", "-l", help="List groups and tasks"),
    show: Optional[str] = typer.Option(None, "--show", help="Show the definition of a task"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
    fail_fast: Optional[bool] = typer.Option(
        None, "--fail-fast/--keep-going", help="Stop starting tasks after the first failure"
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1, help="Maximum number of groups to run at once"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Per-task timeout in seconds"
    ),
    abort_in_flight: Optional[bool] = typer.Option(
        None,
        "--abort-in-flight/--wait-in-flight",
        help="On interrupt, terminate running tasks instead of waiting for them",
    ),
    env: Optional[list[str]] = typer.Option(
        None, "--env", "-e", help="KEY=VALUE added to every task's environment (repeatable)"
    ),
    output_format: Optional[ReportFormat] = typer.Option(
        None, "--format", case_sensitive=False, help="Report format"
    ),
    task_output: Optional[TaskOutputTypes] = typer.Option(
        None, "--task-output", case_sensitive=False, help="Echo task output live: all, out, err or none"
    ),
    show_output: Optional[ShowOutput] = typer.Option(
        None, "--show-output", case_sensitive=False, help="Captured output in the summary: failed, all or none"
    ),
    log_level: str = typer.Option(
        "info", "--log-level", "-L", help="Log verbosity: fatal, error, warn, info, debug, trace"
    ),
) -> None:
    """
    Run all tasks, one GROUP, or one TASK of a GROUP.

    Exit codes: 0 all tasks passed, 1 a task failed, timed out or was skipped,
    2 engine error (bad manifest or config, unknown group or task, or an
    interpreter could not be launched while no task failed).
    """
    try:
        level = parse_log_level(log_level)
    except ValueError as e:
        raise exit_engine_error(ConsoleLogger(err_console), str(e))

    logger = ConsoleLogger(console, level)

    if version:
        logger.info(f"engage version {__version__}")
        return

    manifest = _load(logger, manifest_path)

    if list_only:
        list_tasks(logger, manifest)
        return

    if show is not None:
        try:
            show_task(logger, manifest, show, group)
        except NotFoundError as e:
            raise exit_engine_error(logger, str(e))
        return

    if timeout is not None and timeout <= 0:
        raise exit_engine_error(logger, f"--timeout must be a positive number of seconds, got {timeout:g}")

    try:
        config = load_config(manifest.root)
    except ConfigError as e:
        raise exit_engine_error(logger, str(e))

    settings = _resolve_settings(
        config,
        _parse_env_overlay(logger, env or []),
        jobs,
        fail_fast,
        abort_in_flight,
        timeout,
        task_output,
        show_output,
        output_format,
    )

    if settings.format is not ReportFormat.TEXT:
        # Keep stdout clean for the machine-readable report
        logger = ConsoleLogger(err_console, level)

    run_tasks(logger, manifest, _selection(group, task, task_name), settings)


if __name__ == "__main__":
    app()
