"""CLI command implementations and shared utilities."""

from __future__ import annotations

import typer
from rich.markup import escape

from engage.logging import Logger
from engage.manifest import MANIFEST_FILENAMES
from engage.report import EXIT_ENGINE_ERROR


def exit_engine_error(logger: Logger, message: str) -> typer.Exit:
    """
    Log a fatal engine-level error and build the matching Exit.

    Usage: ``raise exit_engine_error(logger, "...")``
    """
    logger.fatal(f"[red]{escape(message)}[/red]")
    return typer.Exit(EXIT_ENGINE_ERROR)


def manifest_names() -> str:
    return ", ".join(MANIFEST_FILENAMES)
