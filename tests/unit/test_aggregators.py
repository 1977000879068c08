"""Tests for counter, gauge and histogram aggregators."""

import math
import random
import threading

import pytest
from hypothesis import given
from hypothesis import strategies as st

from telemetrykit.core.aggregators import (
    DEFAULT_HISTOGRAM_BUCKETS,
    CounterAggregator,
    GaugeAggregator,
    HistogramAggregator,
    estimate_quantile,
    exponential_buckets,
    linear_buckets,
    validate_buckets,
)
from telemetrykit.core.errors import ConfigurationError


class TestCounterAggregator:
    """Tests for CounterAggregator."""

    @pytest.mark.core
    def test_starts_at_zero(self) -> None:
        assert CounterAggregator().value == 0.0

    @pytest.mark.core
    def test_add_accumulates(self) -> None:
        counter = CounterAggregator()
        counter.add()
        counter.add(2.5)
        assert counter.value == 3.5

    @pytest.mark.core
    def test_zero_delta_is_allowed(self) -> None:
        counter = CounterAggregator()
        counter.add(0)
        assert counter.value == 0.0

    @pytest.mark.core
    @pytest.mark.parametrize("delta", [-1.0, -0.001, math.nan])
    def test_rejects_negative_or_nan_delta(self, delta: float) -> None:
        """Rejected deltas raise and leave the value unchanged."""
        counter = CounterAggregator()
        counter.add(5)
        with pytest.raises(ValueError):
            counter.add(delta)
        assert counter.value == 5.0

    @pytest.mark.core
    @given(st.lists(st.integers(min_value=0, max_value=1000), max_size=50))
    def test_value_is_exact_sum_of_integer_deltas(self, deltas: list[int]) -> None:
        counter = CounterAggregator()
        for delta in deltas:
            counter.add(delta)
        assert counter.snapshot() == sum(deltas)


class TestGaugeAggregator:
    """Tests for GaugeAggregator."""

    @pytest.mark.core
    def test_set_overwrites(self) -> None:
        gauge = GaugeAggregator()
        gauge.set(10)
        gauge.set(-3.5)
        assert gauge.value == -3.5

    @pytest.mark.core
    def test_inc_and_dec(self) -> None:
        gauge = GaugeAggregator()
        gauge.inc(5)
        gauge.dec(2)
        assert gauge.snapshot() == 3.0


class TestBucketHelpers:
    """Tests for bucket ladder helpers and validation."""

    @pytest.mark.core
    def test_exponential_buckets(self) -> None:
        assert exponential_buckets(1, 2, 4) == [1, 2, 4, 8]

    @pytest.mark.core
    def test_linear_buckets(self) -> None:
        assert linear_buckets(0, 10, 3) == [0, 10, 20]

    @pytest.mark.core
    def test_default_buckets_are_valid(self) -> None:
        assert validate_buckets(DEFAULT_HISTOGRAM_BUCKETS) == DEFAULT_HISTOGRAM_BUCKETS

    @pytest.mark.core
    @pytest.mark.parametrize(
        "buckets", [[], [1, 1], [2, 1], [1, math.inf], [math.nan]]
    )
    def test_invalid_buckets_raise(self, buckets: list[float]) -> None:
        with pytest.raises(ConfigurationError):
            validate_buckets(buckets)

    @pytest.mark.core
    def test_invalid_ladder_arguments_raise(self) -> None:
        with pytest.raises(ConfigurationError):
            exponential_buckets(0, 2, 3)
        with pytest.raises(ConfigurationError):
            linear_buckets(0, 0, 3)


class TestHistogramAggregator:
    """Tests for HistogramAggregator."""

    @pytest.mark.core
    def test_count_sum_min_max_are_exact(self) -> None:
        histogram = HistogramAggregator([1, 5, 10])
        for value in (0.5, 3, 7, 20):
            histogram.observe(value)
        summary = histogram.snapshot()
        assert summary.count == 4
        assert summary.sum == 30.5
        assert summary.min == 0.5
        assert summary.max == 20
        assert summary.mean == pytest.approx(7.625)

    @pytest.mark.core
    def test_buckets_are_cumulative_with_overflow(self) -> None:
        """Each value lands in the first bucket whose bound is >= the value."""
        histogram = HistogramAggregator([1, 5, 10])
        for value in (1, 5, 5.1, 11):
            histogram.observe(value)
        assert histogram.snapshot().buckets == (
            (1.0, 1),
            (5.0, 2),
            (10.0, 3),
            (math.inf, 4),
        )

    @pytest.mark.core
    def test_rejects_nan(self) -> None:
        histogram = HistogramAggregator([1])
        with pytest.raises(ValueError):
            histogram.observe(math.nan)
        assert histogram.count == 0

    @pytest.mark.core
    @pytest.mark.parametrize("value", [math.inf, -math.inf])
    def test_rejects_infinite(self, value: float) -> None:
        histogram = HistogramAggregator([1], quantiles=[0.5])
        histogram.observe(0.5)
        with pytest.raises(ValueError, match="finite"):
            histogram.observe(value)
        summary = histogram.snapshot()
        assert summary.count == 1
        assert summary.quantiles[0.5] == pytest.approx(0.5)

    @pytest.mark.core
    def test_empty_snapshot(self) -> None:
        """An empty histogram has NaN min, max and quantiles."""
        summary = HistogramAggregator([1, 2], quantiles=[0.5]).snapshot()
        assert summary.count == 0
        assert math.isnan(summary.min)
        assert math.isnan(summary.max)
        assert math.isnan(summary.quantiles[0.5])
        assert math.isnan(summary.mean)

    @pytest.mark.core
    def test_quantile_extremes_are_observed_min_and_max(self) -> None:
        histogram = HistogramAggregator([10, 20, 30])
        for value in (4, 12, 29):
            histogram.observe(value)
        assert histogram.quantile(0) == 4
        assert histogram.quantile(1) == 29

    @pytest.mark.core
    def test_quantile_outside_unit_interval_raises(self) -> None:
        with pytest.raises(ValueError):
            HistogramAggregator([1]).quantile(1.5)

    @pytest.mark.core
    def test_quantile_within_one_bucket_width_of_exact(self) -> None:
        """Estimated quantiles are within one bucket width of the exact value."""
        width = 10.0
        histogram = HistogramAggregator(linear_buckets(width, width, 10))
        rng = random.Random(42)
        values = sorted(rng.uniform(0, 100) for _ in range(5000))
        for value in values:
            histogram.observe(value)
        for p in (0.1, 0.5, 0.9, 0.95, 0.99):
            exact = values[min(len(values) - 1, math.ceil(p * len(values)) - 1)]
            assert abs(histogram.quantile(p) - exact) <= width

    @pytest.mark.core
    def test_overflow_quantile_is_bounded_by_max(self) -> None:
        """Quantiles in the overflow bucket never exceed the observed max."""
        histogram = HistogramAggregator([1])
        for value in (50, 60, 70):
            histogram.observe(value)
        assert 1 <= histogram.quantile(0.5) <= 70

    @pytest.mark.core
    @given(
        st.lists(
            st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
            min_size=1,
            max_size=100,
        ),
        st.floats(min_value=0, max_value=1),
    )
    def test_quantile_stays_within_observed_range(
        self, values: list[float], p: float
    ) -> None:
        histogram = HistogramAggregator()
        for value in values:
            histogram.observe(value)
        estimate = histogram.quantile(p)
        assert min(values) <= estimate <= max(values)


class TestHistogramConcurrency:
    """Concurrent observations are folded in exactly."""

    @pytest.mark.core
    @pytest.mark.concurrency
    def test_concurrent_observations_are_exact(self) -> None:
        threads_count, per_thread = 8, 2_000
        histogram = HistogramAggregator([1, 2, 4])
        barrier = threading.Barrier(threads_count)

        def worker(offset: int) -> None:
            barrier.wait()
            for step in range(per_thread):
                histogram.observe((offset + step) % 6)

        threads = [
            threading.Thread(target=worker, args=(offset,)) for offset in range(threads_count)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        expected_sum = sum(
            (offset + step) % 6 for offset in range(threads_count) for step in range(per_thread)
        )
        summary = histogram.snapshot()
        assert summary.count == threads_count * per_thread
        assert summary.sum == expected_sum
        assert summary.buckets[-1] == (math.inf, threads_count * per_thread)
        assert summary.min == 0
        assert summary.max == 5


class TestEstimateQuantile:
    """Tests for the standalone estimator."""

    @pytest.mark.core
    def test_no_observations_is_nan(self) -> None:
        assert math.isnan(estimate_quantile([1, 2], [0, 0, 0], math.inf, -math.inf, 0.5))

    @pytest.mark.core
    def test_interpolates_inside_bucket(self) -> None:
        """Two observations in (10, 20] put the median halfway across."""
        estimate = estimate_quantile([10, 20], [0, 2, 0], 10.0, 20.0, 0.5)
        assert estimate == pytest.approx(15.0)
