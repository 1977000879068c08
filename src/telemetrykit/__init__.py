"""telemetrykit: in-process metrics and structured logging.

Typical use:

    ```python
    from telemetrykit import counter, get_logger, init_telemetry

    init_telemetry(service_name="billing")
    charges = counter("billing.charges_total", ["outcome"])
    log = get_logger(__name__)

    charges.labels(outcome="captured").inc()
    log.info("charge {charge_id} captured", {"charge_id": "ch_1"})
    ```
"""

from telemetrykit.adapters.logging import TelemetryHandler
from telemetrykit.adapters.sinks import (
    InMemoryLogSink,
    QueuedLogSink,
    RingBufferLogSink,
    StdlibLoggingSink,
    StreamLogSink,
)
from telemetrykit.core.config import TelemetryConfig
from telemetrykit.core.context import (
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
    update_log_context,
)
from telemetrykit.core.emitter import LogEmitter
from telemetrykit.core.errors import (
    CardinalityExceeded,
    ConfigurationError,
    InvalidMetricName,
    InvalidObservation,
    MetricKindConflict,
    SinkWriteFailure,
    TelemetryError,
)
from telemetrykit.core.labels import LabelSet
from telemetrykit.core.logs import (
    TimedLogResult,
    debug,
    error,
    exception,
    info,
    log,
    log_exception,
    timed_log,
    warn,
)
from telemetrykit.core.loop_guard import LoopGuard
from telemetrykit.core.metrics import counter, gauge, histogram, observe, snapshot
from telemetrykit.core.models import Level, LogRecord, MetricKind, SeriesSnapshot
from telemetrykit.core.redaction import (
    ExactField,
    PatternField,
    RedactionRule,
    Redactor,
    SuffixField,
    digest,
    mask,
    partial_mask,
)
from telemetrykit.core.registry import MetricFamily, SeriesRegistry
from telemetrykit.runtime import Telemetry, get_telemetry, init_telemetry


def get_logger(name: str | None = None) -> LogEmitter:
    """Return a named emitter on the process-wide runtime."""
    return get_telemetry().get_logger(name)


__all__ = [
    "CardinalityExceeded",
    "ConfigurationError",
    "ExactField",
    "InMemoryLogSink",
    "InvalidMetricName",
    "InvalidObservation",
    "LabelSet",
    "Level",
    "LogEmitter",
    "LogRecord",
    "LoopGuard",
    "MetricFamily",
    "MetricKind",
    "MetricKindConflict",
    "PatternField",
    "QueuedLogSink",
    "RedactionRule",
    "Redactor",
    "RingBufferLogSink",
    "SeriesRegistry",
    "SeriesSnapshot",
    "SinkWriteFailure",
    "StdlibLoggingSink",
    "StreamLogSink",
    "SuffixField",
    "Telemetry",
    "TelemetryConfig",
    "TelemetryError",
    "TelemetryHandler",
    "TimedLogResult",
    "clear_log_context",
    "counter",
    "debug",
    "digest",
    "error",
    "exception",
    "gauge",
    "get_log_context",
    "get_logger",
    "get_telemetry",
    "histogram",
    "info",
    "init_telemetry",
    "log",
    "log_context",
    "log_exception",
    "mask",
    "observe",
    "partial_mask",
    "set_log_context",
    "snapshot",
    "timed_log",
    "update_log_context",
    "warn",
]
