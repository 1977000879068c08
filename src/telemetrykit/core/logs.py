"""Log helper functions bound to the process-wide emitter."""

import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from telemetrykit.core.models import Level
from telemetrykit.runtime import get_telemetry


@dataclass
class TimedLogResult:
    """Result object for timed_log context manager."""

    elapsed_seconds: float | None = None


@contextmanager
def timed_log(
    message: str,
    level: Level | str = Level.INFO,
    **fields: Any,
) -> Iterator[TimedLogResult]:
    """Context manager that logs entry and exit with elapsed time.

    Args:
        message: The base log message
        level: Log level (default INFO)
        **fields: Additional structured fields

    Yields:
        TimedLogResult whose elapsed_seconds is set on exit
    """
    emitter = get_telemetry().emitter
    result = TimedLogResult()
    start = time.perf_counter()
    emitter.log(level, f"{message} [entry]", {"phase": "entry", **fields}, stacklevel=3)
    try:
        yield result
    finally:
        result.elapsed_seconds = time.perf_counter() - start
        emitter.log(
            level,
            f"{message} [exit]",
            {"phase": "exit", "elapsed_seconds": result.elapsed_seconds, **fields},
            stacklevel=3,
        )


def log(level: Level | str, message: str, **fields: Any) -> None:
    """Emit a record on the default emitter.

    Args:
        level: Log level (e.g., "INFO", "ERROR", Level.DEBUG)
        message: The log message template
        **fields: Additional structured fields
    """
    get_telemetry().emitter.log(level, message, fields, stacklevel=2)


def info(message: str, **fields: Any) -> None:
    get_telemetry().emitter.log(Level.INFO, message, fields, stacklevel=2)


def error(message: str, error: BaseException | None = None, **fields: Any) -> None:
    """Emit an ERROR record, attaching ``error`` with its stack when given."""
    get_telemetry().emitter.log(Level.ERROR, message, fields, error, stacklevel=2)


def debug(message: str, **fields: Any) -> None:
    get_telemetry().emitter.log(Level.DEBUG, message, fields, stacklevel=2)


def warn(message: str, **fields: Any) -> None:
    get_telemetry().emitter.log(Level.WARN, message, fields, stacklevel=2)


def exception(message: str, **fields: Any) -> None:
    """Emit an ERROR record carrying the exception currently being handled."""
    get_telemetry().emitter.log(
        Level.ERROR, message, fields, sys.exc_info()[1], stacklevel=2
    )


log_exception = exception
