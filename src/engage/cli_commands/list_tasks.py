from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from engage.logging import Logger
from engage.manifest import Manifest
from engage.registry import TaskRegistry


def _format_interpreter(interpreter: tuple[str, ...] | None) -> str:
    if interpreter is None:
        return ""
    return " ".join(interpreter)


def list_tasks(logger: Logger, manifest: Manifest) -> None:
    """
    List groups and their tasks in execution order.
    """
    registry = TaskRegistry(manifest)
    if not registry.groups():
        logger.info("[yellow]No tasks defined[/yellow]")
        return

    logger.info(f"[dim]Interpreter: {escape(_format_interpreter(manifest.interpreter))}[/dim]\n")

    table = Table(show_edge=False, show_header=True, box=None, padding=(0, 2))
    table.add_column("Group", style="bold magenta", no_wrap=True)
    table.add_column("Task", style="bold cyan", no_wrap=True)
    table.add_column("Interpreter", style="white", max_width=40)
    table.add_column("Timeout", style="dim", justify="right")

    for group, tasks in registry.by_group().items():
        for position, task in enumerate(tasks):
            table.add_row(
                escape(group) if position == 0 else "",
                escape(task.name),
                escape(_format_interpreter(task.interpreter)),
                f"{task.timeout:g}s" if task.timeout is not None else "",
            )

    logger.info(table)
