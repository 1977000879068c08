"""Series registry: metric families, lazy series creation and snapshots.

Locking is layered so unrelated metrics never contend:

* the registry lock guards only the name -> family map;
* each family lock guards series creation and its cardinality count;
* each aggregator lock guards that series' values.

Lookups of existing series take no lock at all.
"""

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import TracebackType
from typing import Any

from telemetrykit.core.aggregators import (
    Aggregator,
    CounterAggregator,
    GaugeAggregator,
    HistogramAggregator,
    validate_buckets,
    validate_quantiles,
)
from telemetrykit.core.config import TelemetryConfig
from telemetrykit.core.errors import (
    CardinalityExceeded,
    InvalidMetricName,
    InvalidObservation,
    MetricKindConflict,
    TelemetryError,
)
from telemetrykit.core.labels import LabelSet
from telemetrykit.core.loop_guard import LoopGuard
from telemetrykit.core.models import MetricKind, SeriesSnapshot
from telemetrykit.core.naming import validate_label_key, validate_metric_name
from telemetrykit.core.redaction import NULL_REDACTOR, Redactor

logger = logging.getLogger(__name__)

OVERFLOW_LABEL_VALUE = "__overflow__"

INVALID_OBSERVATIONS_METRIC = "telemetry.invalid_observations_total"
CARDINALITY_REJECTIONS_METRIC = "telemetry.cardinality_rejections_total"

DiagnosticReporter = Callable[[TelemetryError, str], None]


def _log_diagnostic(error: TelemetryError, metric: str) -> None:
    logger.warning("metric diagnostic for %s: %s", metric, error)


class Timer:
    """Context manager that observes elapsed seconds into a histogram series."""

    def __init__(self, series: "BoundSeries") -> None:
        self._series = series
        self._start: float | None = None
        self.elapsed: float | None = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._start is None:
            raise RuntimeError("Timer exited without being entered")
        self.elapsed = time.perf_counter() - self._start
        self._series.observe(self.elapsed)


class BoundSeries:
    """A metric family bound to one label set.

    The aggregator is resolved, and created if needed, on first use. If the
    family's cardinality ceiling refuses the label set, operations are
    dropped and reported as diagnostics.
    """

    __slots__ = ("_family", "labels", "_aggregator")

    def __init__(self, family: "MetricFamily", labels: LabelSet) -> None:
        self._family = family
        self.labels = labels
        self._aggregator: Aggregator | None = None

    def _resolve(self) -> Aggregator | None:
        aggregator = self._aggregator
        if aggregator is None:
            aggregator = self._family._resolve(self.labels)
            self._aggregator = aggregator
        return aggregator

    def _apply(self, op: str, value: float) -> None:
        aggregator = self._resolve()
        if aggregator is None:
            return
        try:
            getattr(aggregator, op)(value)
        except ValueError as exc:
            self._family._registry._report(
                InvalidObservation(self._family.name, str(exc)), self._family.name
            )

    def observe(self, value: float) -> None:
        """Apply ``value`` with the family's natural operation.

        Counters add it, gauges set it, histograms record it.
        """
        self._apply(_OBSERVE_OPS[self._family.kind], value)

    def inc(self, amount: float = 1.0) -> None:
        if self._family.kind is MetricKind.HISTOGRAM:
            self._family._misuse("inc")
            return
        self._apply("add" if self._family.kind is MetricKind.COUNTER else "inc", amount)

    def dec(self, amount: float = 1.0) -> None:
        if self._family.kind is not MetricKind.GAUGE:
            self._family._misuse("dec")
            return
        self._apply("dec", amount)

    def set(self, value: float) -> None:
        if self._family.kind is not MetricKind.GAUGE:
            self._family._misuse("set")
            return
        self._apply("set", value)

    def set_to_current_time(self) -> None:
        self.set(time.time())

    def time(self) -> Timer:
        """Time a block and observe the elapsed seconds."""
        return Timer(self)

    @property
    def value(self) -> Any:
        """Current aggregated value, or None if the series does not exist."""
        aggregator = self._family._series.get(self.labels)
        return aggregator.snapshot() if aggregator is not None else None


class _DroppedSeries(BoundSeries):
    """Returned for label values that can never form a valid series."""

    __slots__ = ()

    def _resolve(self) -> Aggregator | None:
        return None


_OBSERVE_OPS = {
    MetricKind.COUNTER: "add",
    MetricKind.GAUGE: "set",
    MetricKind.HISTOGRAM: "observe",
}


class MetricFamily:
    """All series sharing one metric name; the handle returned by ``register``.

    Attributes:
        name: Metric name.
        kind: Metric kind.
        label_keys: Label keys every series must provide.
        description: Free-form help text.
    """

    def __init__(
        self,
        registry: "SeriesRegistry",
        name: str,
        kind: MetricKind,
        label_keys: tuple[str, ...],
        description: str = "",
        buckets: tuple[float, ...] = (),
        quantiles: tuple[float, ...] = (),
        internal: bool = False,
    ) -> None:
        self._registry = registry
        self.name = name
        self.kind = kind
        self.label_keys = label_keys
        self.description = description
        self.buckets = buckets
        self.quantiles = quantiles
        self._internal = internal
        self._key_set = frozenset(label_keys)
        self._series: dict[LabelSet, Aggregator] = {}
        self._distinct = 0
        self._lock = threading.Lock()
        self._overflow_labels = LabelSet.of(dict.fromkeys(label_keys, OVERFLOW_LABEL_VALUE))
        self._unlabelled: BoundSeries | None = None
        self._handles: dict[LabelSet, BoundSeries] = {}

    def __repr__(self) -> str:
        return f"MetricFamily({self.name!r}, {self.kind.value}, {self.label_keys!r})"

    def signature(self) -> str:
        return f"{self.kind.value}{list(self.label_keys)}"

    def _new_aggregator(self) -> Aggregator:
        if self.kind is MetricKind.COUNTER:
            return CounterAggregator()
        if self.kind is MetricKind.GAUGE:
            return GaugeAggregator()
        return HistogramAggregator(self.buckets, self.quantiles)

    def _resolve(self, labels: LabelSet) -> Aggregator | None:
        aggregator = self._series.get(labels)
        if aggregator is not None:
            return aggregator
        rejected = False
        with self._lock:
            aggregator = self._series.get(labels)
            if aggregator is None:
                ceiling = self._registry.config.cardinality_ceiling
                if self._internal or self._distinct < ceiling:
                    aggregator = self._series[labels] = self._new_aggregator()
                    self._distinct += 1
                else:
                    rejected = True
                    if self._registry.config.cardinality_policy == "overflow":
                        aggregator = self._series.get(self._overflow_labels)
                        if aggregator is None:
                            aggregator = self._new_aggregator()
                            self._series[self._overflow_labels] = aggregator
        if rejected:
            self._registry._report(
                CardinalityExceeded(self.name, self._registry.config.cardinality_ceiling),
                self.name,
            )
        return aggregator

    def _misuse(self, op: str) -> None:
        self._registry._report(
            InvalidObservation(self.name, f"{op}() is not supported on a {self.kind.value}"),
            self.name,
        )

    def labels(self, **values: Any) -> BoundSeries:
        """Bind label values, returning a series handle.

        Values are redacted before they become part of the series key, and
        the handle is cached per redacted label set up to the cardinality
        ceiling. A label set that does not cover exactly ``label_keys`` is
        reported as an invalid observation and yields a handle that drops
        every update.
        """
        return self._bind(values)

    def _bind(self, values: Mapping[str, Any]) -> BoundSeries:
        if not values and not self.label_keys:
            if self._unlabelled is None:
                self._unlabelled = BoundSeries(self, LabelSet.empty())
            return self._unlabelled
        if set(values) != self._key_set:
            missing = sorted(self._key_set - set(values))
            extra = sorted(set(values) - self._key_set)
            self._registry._report(
                InvalidObservation(
                    self.name, f"label mismatch (missing={missing}, unexpected={extra})"
                ),
                self.name,
            )
            return _DroppedSeries(self, LabelSet.empty())
        labels = LabelSet.of(self._registry.redactor.redact_fields(values))
        handle = self._handles.get(labels)
        if handle is None:
            handle = BoundSeries(self, labels)
            with self._lock:
                ceiling = self._registry.config.cardinality_ceiling
                if self._internal or len(self._handles) < ceiling:
                    handle = self._handles.setdefault(labels, handle)
        return handle

    def _default(self) -> BoundSeries:
        return self._bind({})

    def inc(self, amount: float = 1.0) -> None:
        self._default().inc(amount)

    def dec(self, amount: float = 1.0) -> None:
        self._default().dec(amount)

    def set(self, value: float) -> None:
        self._default().set(value)

    def observe(self, value: float) -> None:
        self._default().observe(value)

    def time(self) -> Timer:
        return self._default().time()

    def series_count(self) -> int:
        return len(self._series)

    def snapshot(self) -> list[SeriesSnapshot]:
        with self._lock:
            items = list(self._series.items())
        return [
            SeriesSnapshot(self.name, self.kind, labels, aggregator.snapshot())
            for labels, aggregator in items
        ]


class SeriesRegistry:
    """Owns every metric family and series for the life of the process.

    Args:
        config: Telemetry configuration (ceiling, policy, buckets, guard).
        redactor: Applied to label values before they form series keys.
        reporter: Receives runtime diagnostics, at most once per loop guard
            window per ``(error kind, metric)``. Defaults to a stdlib logger.
        clock: Monotonic time source for the diagnostic window.

    Example:
        ```python
        registry = SeriesRegistry()
        requests = registry.counter("http.requests_total", ["method"])
        requests.labels(method="GET").inc()
        latency = registry.histogram("http.request_duration_seconds")
        with latency.time():
            handle()
        registry.snapshot()
        ```
    """

    def __init__(
        self,
        config: TelemetryConfig | None = None,
        redactor: Redactor | None = None,
        reporter: DiagnosticReporter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or TelemetryConfig()
        self.redactor = redactor if redactor is not None else NULL_REDACTOR
        self._reporter: DiagnosticReporter = reporter or _log_diagnostic
        self._families: dict[str, MetricFamily] = {}
        self._lock = threading.Lock()
        self._diagnostic_guard = LoopGuard(
            threshold=1, window=self.config.loop_guard_window, clock=clock
        )
        self._invalid_total = self._register(
            INVALID_OBSERVATIONS_METRIC, MetricKind.COUNTER, ("metric",), internal=True
        )
        self._rejections_total = self._register(
            CARDINALITY_REJECTIONS_METRIC, MetricKind.COUNTER, ("metric",), internal=True
        )

    def set_diagnostic_reporter(self, reporter: DiagnosticReporter | None) -> None:
        self._reporter = reporter or _log_diagnostic

    def register(
        self,
        name: str,
        kind: MetricKind | str,
        label_keys: Iterable[str] = (),
        *,
        description: str = "",
        buckets: Sequence[float] | None = None,
        quantiles: Sequence[float] | None = None,
    ) -> MetricFamily:
        """Register a metric family, or return the existing identical one.

        Args:
            name: Metric name, ``component.subject[.unit]``.
            kind: Metric kind.
            label_keys: Label keys every observation must provide.
            description: Free-form help text.
            buckets: Histogram bucket bounds (defaults to the config's).
            quantiles: Histogram quantiles (defaults to the config's).

        Returns:
            The MetricFamily handle.

        Raises:
            InvalidMetricName: If the name or a label key is malformed.
            MetricKindConflict: If ``name`` exists with another kind or keys.
            ConfigurationError: If buckets or quantiles are invalid.
        """
        return self._register(
            name,
            MetricKind(kind),
            tuple(label_keys),
            description=description,
            buckets=buckets,
            quantiles=quantiles,
        )

    def _register(
        self,
        name: str,
        kind: MetricKind,
        label_keys: tuple[str, ...],
        *,
        description: str = "",
        buckets: Sequence[float] | None = None,
        quantiles: Sequence[float] | None = None,
        internal: bool = False,
    ) -> MetricFamily:
        validate_metric_name(name, kind)
        for key in label_keys:
            validate_label_key(key)
        if len(set(label_keys)) != len(label_keys):
            raise InvalidMetricName(name, f"duplicate label keys in {list(label_keys)}")
        bounds: tuple[float, ...] = ()
        qs: tuple[float, ...] = ()
        if kind is MetricKind.HISTOGRAM:
            bounds = (
                validate_buckets(buckets)
                if buckets is not None
                else self.config.histogram_buckets
            )
            qs = validate_quantiles(quantiles) if quantiles is not None else self.config.quantiles
        with self._lock:
            existing = self._families.get(name)
            if existing is not None:
                if existing.kind is not kind or existing._key_set != frozenset(label_keys):
                    raise MetricKindConflict(
                        name, existing.signature(), f"{kind.value}{list(label_keys)}"
                    )
                return existing
            family = MetricFamily(
                self, name, kind, label_keys, description, bounds, qs, internal
            )
            self._families[name] = family
            return family

    def counter(
        self, name: str, label_keys: Iterable[str] = (), *, description: str = ""
    ) -> MetricFamily:
        return self.register(name, MetricKind.COUNTER, label_keys, description=description)

    def gauge(
        self, name: str, label_keys: Iterable[str] = (), *, description: str = ""
    ) -> MetricFamily:
        return self.register(name, MetricKind.GAUGE, label_keys, description=description)

    def histogram(
        self,
        name: str,
        label_keys: Iterable[str] = (),
        *,
        description: str = "",
        buckets: Sequence[float] | None = None,
        quantiles: Sequence[float] | None = None,
    ) -> MetricFamily:
        return self.register(
            name,
            MetricKind.HISTOGRAM,
            label_keys,
            description=description,
            buckets=buckets,
            quantiles=quantiles,
        )

    def observe(
        self,
        handle: MetricFamily,
        label_values: Mapping[str, Any] | None,
        value: float,
    ) -> None:
        """Record ``value`` on the series selected by ``label_values``.

        Counters add the value (negative deltas are rejected), gauges are
        overwritten, histograms fold it into their distribution. Problems
        are reported as diagnostics and never raised.
        """
        handle._bind(dict(label_values or {})).observe(value)

    def get(self, name: str) -> MetricFamily | None:
        return self._families.get(name)

    def families(self) -> list[MetricFamily]:
        with self._lock:
            return list(self._families.values())

    def series_count(self, name: str) -> int:
        family = self._families.get(name)
        return family.series_count() if family is not None else 0

    def snapshot(self) -> list[SeriesSnapshot]:
        """Capture every series.

        Each series is read atomically under its own lock; the result is not
        a single atomic cut across all series.
        """
        snapshot: list[SeriesSnapshot] = []
        for family in self.families():
            snapshot.extend(family.snapshot())
        return snapshot

    def diagnostic_counts(self) -> dict[str, float]:
        """Totals of runtime diagnostics, keyed by ``invalid_observations``
        and ``cardinality_rejections``."""
        return {
            "invalid_observations": math.fsum(
                s.value for s in self._invalid_total.snapshot()  # type: ignore[misc]
            ),
            "cardinality_rejections": math.fsum(
                s.value for s in self._rejections_total.snapshot()  # type: ignore[misc]
            ),
        }

    def _report(self, error: TelemetryError, metric: str) -> None:
        if isinstance(error, CardinalityExceeded):
            self._rejections_total.labels(metric=metric).inc()
        else:
            self._invalid_total.labels(metric=metric).inc()
        if not self._diagnostic_guard.admit((type(error).__name__, metric)).allowed:
            return
        try:
            self._reporter(error, metric)
        except Exception:
            logger.exception("diagnostic reporter failed for %s", metric)
