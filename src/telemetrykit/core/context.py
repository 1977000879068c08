"""Request-scoped log fields carried in a context variable.

Fields set here are merged into every record emitted from the same thread
or asyncio task, below caller fields and ambient fields in precedence.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "telemetrykit_log_context", default=None
)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current context fields."""
    return dict(_log_context.get() or {})


def set_log_context(**fields: Any) -> None:
    """Replace the current context fields."""
    _log_context.set(dict(fields))


def update_log_context(**fields: Any) -> None:
    """Add or replace fields in the current context."""
    _log_context.set({**(_log_context.get() or {}), **fields})


def clear_log_context() -> None:
    _log_context.set(None)


@contextmanager
def log_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """Temporarily add fields to the context, restoring it on exit.

    Example:
        ```python
        with log_context(request_id="abc-123"):
            emitter.info("handling request")  # carries request_id
        ```
    """
    token = _log_context.set({**(_log_context.get() or {}), **fields})
    try:
        yield get_log_context()
    finally:
        _log_context.reset(token)
