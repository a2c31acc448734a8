from __future__ import annotations

from typing import Optional

import yaml
from rich.markup import escape
from rich.syntax import Syntax

from engage.logging import Logger
from engage.manifest import Manifest, Task, effective_interpreter
from engage.registry import TaskRegistry


class _TaskDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _literal_presenter(dumper, data):
    """Use literal block style (|) for strings containing newlines."""
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_TaskDumper.add_representer(str, _literal_presenter)


def _task_document(manifest: Manifest, task: Task) -> dict:
    document = {
        "name": task.name,
        "group": task.group,
        "interpreter": list(effective_interpreter(manifest, task)),
        "timeout": task.timeout,
        "env": dict(task.env),
        "script": task.script,
    }
    # Remove empty fields for cleaner display
    return {key: value for key, value in document.items() if value}


def show_task(logger: Logger, manifest: Manifest, name: str, group: Optional[str] = None) -> None:
    """
    Show the definition of every task called ``name`` with syntax highlighting.

    Raises:
        NotFoundError: If no such task exists
    """
    registry = TaskRegistry(manifest)
    tasks = registry.find_tasks(name, group)

    for position, task in enumerate(tasks):
        if position:
            logger.info("")
        logger.info(f"[bold]Task: {escape(task.qualified_name)}[/bold] [dim](#{task.index + 1})[/dim]")
        if manifest.source:
            logger.info(f"Source: {escape(str(manifest.source))}")
        if task.interpreter is None:
            logger.info("[dim]Uses the manifest interpreter[/dim]")

        yaml_str = yaml.dump(
            _task_document(manifest, task),
            Dumper=_TaskDumper,
            default_flow_style=False,
            sort_keys=False,
        )
        syntax = Syntax(yaml_str, "yaml", theme="ansi_light", line_numbers=False)
        logger.info(syntax)
