from threading import RLock

from rich.console import Console

from engage.logging import Logger, LogLevel


class ConsoleLogger(Logger):
    """
    Prints engage's diagnostics through a shared rich Console.

    Group lines log from worker threads, so printing and level changes share
    one lock and a line is never interleaved with another.
    """

    def __init__(self, console: Console, level: LogLevel = LogLevel.INFO) -> None:
        self._console = console
        self._levels = [level]
        self._lock = RLock()

    @property
    def level(self) -> LogLevel:
        return self._levels[-1]

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Print when level is no more verbose than the active one; arguments go to Console.print()."""
        with self._lock:
            if self._levels[-1].value >= level.value:
                self._console.print(*args, **kwargs)

    def push_level(self, level: LogLevel) -> None:
        with self._lock:
            self._levels.append(level)

    def pop_level(self) -> LogLevel:
        """Restore the level active before the last push_level()."""
        with self._lock:
            if len(self._levels) <= 1:
                raise RuntimeError("Cannot pop the base log level")
            return self._levels.pop()
