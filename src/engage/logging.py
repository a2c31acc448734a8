"""Logging infrastructure for engage.

Components receive a Logger by injection rather than printing directly, so the
CLI decides where output goes and how verbose it is.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod


class LogLevel(enum.Enum):
    """Log verbosity levels for engage diagnostic messages.

    Lower numeric values represent higher severity / less verbosity.
    """
    FATAL = 0  # Only unrecoverable errors (malformed manifest, unknown group)
    ERROR = 1  # Fatal errors plus task failures
    WARN = 2   # Errors plus warnings about suspicious configuration
    INFO = 3   # Warnings plus normal execution progress (default)
    DEBUG = 4  # Info plus interpreters, working directories, overlay keys
    TRACE = 5  # Debug plus scheduler bookkeeping


class Logger(ABC):
    """Abstract logger with a stack of active levels."""

    @abstractmethod
    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Emit a message if ``level`` passes the current threshold."""
        ...

    @abstractmethod
    def push_level(self, level: LogLevel) -> None:
        """Temporarily switch to ``level`` until the matching pop_level()."""
        ...

    @abstractmethod
    def pop_level(self) -> LogLevel:
        """Restore the previous level and return the one that was active."""
        ...

    def fatal(self, *args, **kwargs) -> None:
        self.log(LogLevel.FATAL, *args, **kwargs)

    def error(self, *args, **kwargs) -> None:
        self.log(LogLevel.ERROR, *args, **kwargs)

    def warn(self, *args, **kwargs) -> None:
        self.log(LogLevel.WARN, *args, **kwargs)

    def info(self, *args, **kwargs) -> None:
        self.log(LogLevel.INFO, *args, **kwargs)

    def debug(self, *args, **kwargs) -> None:
        self.log(LogLevel.DEBUG, *args, **kwargs)

    def trace(self, *args, **kwargs) -> None:
        self.log(LogLevel.TRACE, *args, **kwargs)


def parse_log_level(value: str) -> LogLevel:
    """
    Convert a CLI log level name to a LogLevel.

    Args:
        value: Case-insensitive level name (fatal, error, warn, info, debug, trace)

    Returns:
        The matching LogLevel

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LogLevel[value.strip().upper()]
    except KeyError:
        valid = ", ".join(level.name.lower() for level in LogLevel)
        raise ValueError(f"Invalid log level '{value}'. Valid levels: {valid}") from None
