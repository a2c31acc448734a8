"""Exception types raised by the engine."""

from __future__ import annotations

__all__ = [
    "EngageError",
    "ManifestError",
    "NotFoundError",
    "ConfigError",
    "SpawnError",
]


class EngageError(Exception):
    """Base class for fatal engine-level errors."""

    pass


class ManifestError(EngageError):
    """
    Raised when a manifest is malformed or incomplete.

    No task is executed once this has been raised.
    """

    pass


class NotFoundError(EngageError):
    """Raised when a requested group or task does not exist, or a selection is empty."""

    pass


class ConfigError(EngageError):
    """Raised when a configuration file is invalid."""

    pass


class SpawnError(EngageError):
    """
    Raised when a child process cannot be created for reasons other than a
    missing or non-executable interpreter (e.g. the OS refused to fork).
    """

    pass
