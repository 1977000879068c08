"""Core domain models for telemetry data."""

import math
import traceback
from dataclasses import dataclass, field
from enum import Enum, IntEnum

from telemetrykit.core.labels import LabelSet, LabelValue


class Level(IntEnum):
    """Log levels, numerically aligned with the stdlib ``logging`` module."""

    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, value: "Level | str | int") -> "Level":
        """Parse a level from a name (case-insensitive) or number.

        ``"WARNING"`` and ``"FATAL"`` are accepted as aliases. Numbers are
        rounded down to the nearest known level.

        Raises:
            ValueError: If the value does not name a level.
        """
        if isinstance(value, Level):
            return value
        if isinstance(value, int):
            known = [lvl for lvl in cls if lvl <= value]
            if not known:
                raise ValueError(f"unknown log level: {value!r}")
            return known[-1]
        name = str(value).strip().upper()
        name = _LEVEL_ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown log level: {value!r}") from None


_LEVEL_ALIASES = {"WARNING": "WARN", "FATAL": "CRITICAL"}


class MetricKind(str, Enum):
    """The three metric primitives."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


def _exception_chain(exc: BaseException) -> tuple[tuple[str, str], ...]:
    causes: list[tuple[str, str]] = []
    seen = {id(exc)}
    current: BaseException | None = exc
    while current is not None:
        nxt = current.__cause__
        if nxt is None and not current.__suppress_context__:
            nxt = current.__context__
        if nxt is None or id(nxt) in seen:
            break
        seen.add(id(nxt))
        causes.append((type(nxt).__name__, str(nxt)))
        current = nxt
    return tuple(causes)


@dataclass(frozen=True)
class ErrorInfo:
    """Error payload attached to a log record.

    Attributes:
        type: Exception class name.
        message: ``str(exc)``.
        stack: Full formatted traceback, including chained exceptions.
        causes: The cause/context chain as ``(type, message)`` pairs,
            nearest cause first.
    """

    type: str
    message: str
    stack: str
    causes: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        return cls(
            type=type(exc).__name__,
            message=str(exc),
            stack="".join(traceback.format_exception(exc)),
            causes=_exception_chain(exc),
        )


class _TemplateFields(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@dataclass(frozen=True)
class LogRecord:
    """A structured log record. Built once per emission, never mutated.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Effective level of the record.
        message: Message template, e.g. ``"order {order_id} placed"``.
        fields: Composed and redacted structured fields.
        error: Optional error payload.
        site: Call site as ``path:line`` when known.
        logger: Name of the emitting logger, if any.
    """

    timestamp: float
    level: Level
    message: str
    fields: LabelSet = field(default_factory=LabelSet.empty)
    error: ErrorInfo | None = None
    site: str | None = None
    logger: str | None = None

    def render(self) -> str:
        """Format the message template against the record's fields.

        Placeholders without a matching field are left as-is.
        """
        try:
            return self.message.format_map(_TemplateFields(self.fields.to_dict()))
        except (ValueError, IndexError, KeyError, TypeError, AttributeError):
            return self.message


@dataclass(frozen=True)
class HistogramSummary:
    """Point-in-time summary of a histogram series.

    Attributes:
        count: Exact number of observations.
        sum: Exact sum of observations.
        min: Smallest observation (NaN when empty).
        max: Largest observation (NaN when empty).
        buckets: ``(upper_bound, cumulative_count)`` pairs; the last bound
            is ``inf``.
        quantiles: Estimated quantiles keyed by ``p``.
    """

    count: int
    sum: float
    min: float
    max: float
    buckets: tuple[tuple[float, int], ...]
    quantiles: dict[float, float] = field(default_factory=dict)

    @property
    def mean(self) -> float:
        return self.sum / self.count if self.count else math.nan


@dataclass(frozen=True)
class SeriesSnapshot:
    """One series as captured by ``SeriesRegistry.snapshot()``.

    Attributes:
        name: Metric name.
        kind: Metric kind.
        labels: The series label set.
        value: Counter/gauge value, or a HistogramSummary.
    """

    name: str
    kind: MetricKind
    labels: LabelSet
    value: float | HistogramSummary

    def labels_dict(self) -> dict[str, LabelValue]:
        return self.labels.to_dict()
