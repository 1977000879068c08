"""Python logging handler adapter for telemetrykit.

This adapter bridges Python's standard library logging module to a
LogEmitter, so records from third-party libraries get level gating,
redaction, ambient fields and the loop guard like any other record.
"""

import logging

from telemetrykit.core.emitter import LogEmitter
from telemetrykit.core.models import Level

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


# Default attributes to extract from LogRecord
_DEFAULT_INCLUDE_ATTRS = ["module", "funcName", "lineno"]


class TelemetryHandler(logging.Handler):
    """Logging handler that routes stdlib records through a LogEmitter.

    Example:
        ```python
        from telemetrykit import TelemetryHandler, get_telemetry

        handler = TelemetryHandler(get_telemetry().emitter)
        logging.getLogger().addHandler(handler)
        ```
    """

    def __init__(
        self,
        emitter: LogEmitter,
        include_attrs: list[str] | None = None,
    ) -> None:
        """Initialize the handler with an emitter.

        Args:
            emitter: Emitter that receives the converted records.
            include_attrs: List of LogRecord attributes to include. Defaults to
                ["module", "funcName", "lineno"]; "pathname" is also known.
        """
        super().__init__()
        self._emitter = emitter
        self._include_attrs = (
            include_attrs if include_attrs is not None else _DEFAULT_INCLUDE_ATTRS
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Convert a stdlib record and hand it to the emitter.

        Args:
            record: The log record to emit.
        """
        try:
            # custom levels below DEBUG, NOTSET included, log as DEBUG
            level = Level.parse(max(record.levelno, logging.DEBUG))
        except Exception:
            self.handleError(record)
            return
        error = None
        if record.exc_info and record.exc_info[1] is not None:
            error = record.exc_info[1]
        if level < self._emitter.min_level and error is None:
            return

        def fields() -> dict[str, str | int | float | bool]:
            # Map of attribute names to their values from LogRecord
            attr_mapping: dict[str, str | int | float | bool] = {
                "module": record.name,
                "funcName": record.funcName or "",
                "lineno": record.lineno,
                "pathname": record.pathname,
            }
            attributes = {
                key: attr_mapping[key]
                for key in self._include_attrs
                if key in attr_mapping
            }
            # Add any extra attributes passed via logging call
            for key, value in record.__dict__.items():
                if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                    value, (str, int, float, bool)
                ):
                    attributes[key] = value
            return attributes

        try:
            self._emitter.log(
                level,
                record.getMessage(),
                fields,
                error,
                site=f"{record.pathname}:{record.lineno}",
            )
        except Exception:
            self.handleError(record)
