"""Error taxonomy for telemetrykit.

Registration-time errors are raised to the caller. Runtime errors on the
observation path are built as values and handed to the diagnostics
reporter instead of being raised.
"""


class TelemetryError(Exception):
    """Base class for all telemetrykit errors."""


class ConfigurationError(TelemetryError, ValueError):
    """Invalid configuration value or bucket layout."""


class InvalidMetricName(TelemetryError, ValueError):
    """Metric name or label key does not follow the naming convention."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"invalid metric name {name!r}: {reason}")
        self.name = name
        self.reason = reason


class MetricKindConflict(TelemetryError):
    """A metric name was registered again with a different signature."""

    def __init__(self, name: str, existing: str, requested: str) -> None:
        super().__init__(
            f"metric {name!r} already registered as {existing}, requested {requested}"
        )
        self.name = name
        self.existing = existing
        self.requested = requested


class InvalidObservation(TelemetryError, ValueError):
    """An observation was rejected (negative counter delta, bad labels, NaN)."""

    def __init__(self, metric: str, reason: str) -> None:
        super().__init__(f"invalid observation for {metric!r}: {reason}")
        self.metric = metric
        self.reason = reason


class CardinalityExceeded(TelemetryError):
    """A new label set was refused because the metric hit its ceiling."""

    def __init__(self, metric: str, ceiling: int) -> None:
        super().__init__(
            f"metric {metric!r} reached its cardinality ceiling of {ceiling} series"
        )
        self.metric = metric
        self.ceiling = ceiling


class SinkWriteFailure(TelemetryError):
    """A log sink raised while writing a record. Never surfaced to callers."""

    def __init__(self, sink: object, cause: BaseException) -> None:
        super().__init__(f"{type(sink).__name__}.write failed: {cause!r}")
        self.sink = sink
        self.__cause__ = cause


class LabelSetTooLarge(TelemetryError, ValueError):
    """A label set exceeded the maximum number of entries."""
