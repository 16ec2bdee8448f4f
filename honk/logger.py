"""Package-wide logger with a replaceable implementation."""

from __future__ import annotations

import sys
import time
from abc import ABC, abstractmethod
from typing import Any, TextIO


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args if args else fmt


class Logger(ABC):
    """Interface for package output, with printf-style formatting."""

    @abstractmethod
    def fatalf(self, fmt: str, *args: Any) -> None:
        """Log a message and stop the program."""

    @abstractmethod
    def printf(self, fmt: str, *args: Any) -> None:
        """Log a message."""


class StdLogger(Logger):
    """Writes timestamped lines to a stream (standard error by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def _write(self, message: str) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        if not message.endswith("\n"):
            message += "\n"
        stream.write(time.strftime("%Y/%m/%d %H:%M:%S ") + message)
        stream.flush()

    def fatalf(self, fmt: str, *args: Any) -> None:
        """Write the message and exit with status 1."""
        self._write(_format(fmt, args))
        raise SystemExit(1)

    def printf(self, fmt: str, *args: Any) -> None:
        self._write(_format(fmt, args))


class NopLogger(Logger):
    """Discards everything."""

    def fatalf(self, fmt: str, *args: Any) -> None:
        return None

    def printf(self, fmt: str, *args: Any) -> None:
        return None


_logger: Logger = StdLogger()


def set_logger(logger: Logger) -> None:
    """Replace the logger used for package output."""
    global _logger
    _logger = logger


def get_logger() -> Logger:
    """Return the logger used for package output."""
    return _logger