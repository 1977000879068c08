"""Sink forwarding records to a standard library logger."""

import logging

from telemetrykit.core.models import LogRecord

_LOGGING_LEVELS = {
    10: logging.DEBUG,
    20: logging.INFO,
    30: logging.WARNING,
    40: logging.ERROR,
    50: logging.CRITICAL,
}


class StdlibLoggingSink:
    """Hands records to an existing ``logging`` setup.

    The rendered message becomes the log message. Fields are passed via
    ``extra`` under a single ``fields`` attribute, and the error payload
    under ``error``, so formatters can pick them up. Do not combine with
    ``TelemetryHandler`` on the same logger: the record would loop back.

    Args:
        logger: Target logger, or a logger name.
    """

    def __init__(self, logger: logging.Logger | str = "telemetrykit") -> None:
        self.logger = logging.getLogger(logger) if isinstance(logger, str) else logger

    def write(self, record: LogRecord) -> None:
        level = _LOGGING_LEVELS.get(int(record.level), logging.INFO)
        extra = {"fields": record.fields.to_dict(), "error": record.error}
        message = record.render()
        if record.error is not None:
            message = f"{message}\n{record.error.stack}"
        self.logger.log(level, message, extra=extra)
