"""Per-series aggregation state for counters, gauges and histograms.

Every aggregator owns its own lock. Updates and snapshots of one series
never contend with another series.
"""

import bisect
import math
import threading
from collections.abc import Iterable, Sequence

from telemetrykit.core.errors import ConfigurationError
from telemetrykit.core.models import HistogramSummary, MetricKind

DEFAULT_QUANTILES: tuple[float, ...] = (0.5, 0.95, 0.99)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Build an exponential bucket ladder.

    Args:
        start: Upper bound of the first bucket, must be > 0.
        factor: Growth factor between consecutive bounds, must be > 1.
        count: Number of bounds.

    Returns:
        ``[start, start * factor, ..., start * factor ** (count - 1)]``
    """
    if start <= 0 or factor <= 1 or count < 1:
        raise ConfigurationError("exponential buckets need start > 0, factor > 1, count >= 1")
    return [start * factor**i for i in range(count)]


def linear_buckets(start: float, width: float, count: int) -> list[float]:
    """Build ``count`` evenly spaced bounds starting at ``start``."""
    if width <= 0 or count < 1:
        raise ConfigurationError("linear buckets need width > 0, count >= 1")
    return [start + width * i for i in range(count)]


# Exponential ladder from 5ms to ~10s, suited to request latencies in seconds.
DEFAULT_HISTOGRAM_BUCKETS: tuple[float, ...] = tuple(exponential_buckets(0.005, 2, 12))


def validate_buckets(buckets: Iterable[float]) -> tuple[float, ...]:
    """Check bucket bounds are non-empty, finite and strictly increasing.

    Raises:
        ConfigurationError: If the bounds are unusable.
    """
    bounds = tuple(float(b) for b in buckets)
    if not bounds:
        raise ConfigurationError("histogram needs at least one bucket boundary")
    if any(not math.isfinite(b) for b in bounds):
        raise ConfigurationError("bucket boundaries must be finite; overflow is implicit")
    if any(b >= nxt for b, nxt in zip(bounds, bounds[1:])):
        raise ConfigurationError("bucket boundaries must be strictly increasing")
    return bounds


def validate_quantiles(quantiles: Iterable[float]) -> tuple[float, ...]:
    qs = tuple(float(q) for q in quantiles)
    if any(not 0.0 <= q <= 1.0 for q in qs):
        raise ConfigurationError("quantiles must be within [0, 1]")
    return qs


class CounterAggregator:
    """Monotonically non-decreasing accumulated value."""

    kind = MetricKind.COUNTER

    def __init__(self) -> None:
        self._value = 0.0
        self._lock = threading.Lock()

    def add(self, delta: float = 1.0) -> None:
        """Add a non-negative delta.

        Raises:
            ValueError: If ``delta`` is negative or NaN. The value is unchanged.
        """
        if delta < 0 or math.isnan(delta):
            raise ValueError(f"counter delta must be >= 0, got {delta!r}")
        with self._lock:
            self._value += delta

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def snapshot(self) -> float:
        return self.value


class GaugeAggregator:
    """Last written value. Concurrent writers resolve as last write wins."""

    kind = MetricKind.GAUGE

    def __init__(self) -> None:
        self._value = 0.0
        self._lock = threading.Lock()

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def inc(self, delta: float = 1.0) -> None:
        with self._lock:
            self._value += delta

    def dec(self, delta: float = 1.0) -> None:
        self.inc(-delta)

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def snapshot(self) -> float:
        return self.value


def estimate_quantile(
    bounds: Sequence[float],
    counts: Sequence[int],
    lowest: float,
    highest: float,
    p: float,
) -> float:
    """Estimate the ``p`` quantile from bucket counts.

    The bucket holding rank ``p * total`` is found from cumulative counts and
    the result is interpolated linearly between that bucket's edges. The first
    bucket's lower edge is the observed minimum and the overflow bucket's
    upper edge is the observed maximum; edges are clamped to ``[lowest,
    highest]``. The error is therefore at most one bucket width.

    Args:
        bounds: Upper bounds of the regular buckets.
        counts: Per-bucket counts, ``len(bounds) + 1`` entries (last is overflow).
        lowest: Smallest observed value.
        highest: Largest observed value.
        p: Requested quantile in ``[0, 1]``.

    Returns:
        Estimated value, or NaN if there are no observations.
    """
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"quantile must be within [0, 1], got {p!r}")
    total = sum(counts)
    if total == 0:
        return math.nan
    if p == 0.0:
        return lowest
    if p == 1.0:
        return highest
    rank = p * total
    seen = 0
    for index, in_bucket in enumerate(counts):
        if not in_bucket:
            continue
        if seen + in_bucket >= rank:
            lower = bounds[index - 1] if index > 0 else lowest
            upper = bounds[index] if index < len(bounds) else highest
            lower = max(lower, lowest)
            upper = min(upper, highest)
            fraction = (rank - seen) / in_bucket
            return min(max(lower + (upper - lower) * fraction, lower), upper)
        seen += in_bucket
    return highest


class HistogramAggregator:
    """Bucketed distribution with exact count, sum, min and max.

    Each observation lands in the first bucket whose bound is ``>=`` the
    value, or in the trailing overflow bucket.
    """

    kind = MetricKind.HISTOGRAM

    def __init__(
        self,
        buckets: Sequence[float] = DEFAULT_HISTOGRAM_BUCKETS,
        quantiles: Sequence[float] = DEFAULT_QUANTILES,
    ) -> None:
        self._bounds = validate_buckets(buckets)
        self._quantiles = validate_quantiles(quantiles)
        self._counts = [0] * (len(self._bounds) + 1)
        self._count = 0
        self._sum = 0.0
        self._min = math.inf
        self._max = -math.inf
        self._lock = threading.Lock()

    @property
    def bounds(self) -> tuple[float, ...]:
        return self._bounds

    def observe(self, value: float) -> None:
        """Fold one observation into the distribution.

        Raises:
            ValueError: If ``value`` is NaN or infinite.
        """
        if not math.isfinite(value):
            raise ValueError(f"histogram observation must be finite, got {value!r}")
        index = bisect.bisect_left(self._bounds, value)
        with self._lock:
            self._counts[index] += 1
            self._count += 1
            self._sum += value
            if value < self._min:
                self._min = value
            if value > self._max:
                self._max = value

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def quantile(self, p: float) -> float:
        """Estimate the ``p`` quantile; see ``estimate_quantile``."""
        with self._lock:
            counts = list(self._counts)
            lowest, highest = self._min, self._max
        return estimate_quantile(self._bounds, counts, lowest, highest, p)

    def snapshot(self) -> HistogramSummary:
        with self._lock:
            counts = list(self._counts)
            count, total = self._count, self._sum
            lowest, highest = self._min, self._max
        cumulative: list[tuple[float, int]] = []
        running = 0
        for bound, in_bucket in zip((*self._bounds, math.inf), counts):
            running += in_bucket
            cumulative.append((bound, running))
        return HistogramSummary(
            count=count,
            sum=total,
            min=lowest if count else math.nan,
            max=highest if count else math.nan,
            buckets=tuple(cumulative),
            quantiles={
                q: estimate_quantile(self._bounds, counts, lowest, highest, q)
                for q in self._quantiles
            },
        )


Aggregator = CounterAggregator | GaugeAggregator | HistogramAggregator
