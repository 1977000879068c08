"""Tests for metric name and label key validation."""

import pytest

from telemetrykit.core.errors import InvalidMetricName
from telemetrykit.core.models import MetricKind
from telemetrykit.core.naming import (
    MAX_NAME_LENGTH,
    validate_label_key,
    validate_metric_name,
)


class TestValidateMetricName:
    """Tests for validate_metric_name()."""

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("http.requests_total", MetricKind.COUNTER),
            ("db.query_duration_seconds", MetricKind.HISTOGRAM),
            ("worker.queue.depth", MetricKind.GAUGE),
            ("app2.cache_hits_total", MetricKind.COUNTER),
        ],
    )
    def test_accepts_conventional_names(self, name: str, kind: MetricKind) -> None:
        assert validate_metric_name(name, kind) == name

    @pytest.mark.core
    @pytest.mark.parametrize(
        "name",
        ["", "requests_total", "Http.requests_total", "http..requests_total",
         "http.requests-total", "1http.requests_total", "http.requests_total."],
    )
    def test_rejects_malformed_names(self, name: str) -> None:
        with pytest.raises(InvalidMetricName):
            validate_metric_name(name, MetricKind.COUNTER)

    @pytest.mark.core
    def test_rejects_overlong_name(self) -> None:
        name = "a." + "b" * MAX_NAME_LENGTH + "_total"
        with pytest.raises(InvalidMetricName, match="longer than"):
            validate_metric_name(name, MetricKind.COUNTER)

    @pytest.mark.core
    def test_counter_requires_total_suffix(self) -> None:
        with pytest.raises(InvalidMetricName, match="_total"):
            validate_metric_name("http.requests", MetricKind.COUNTER)

    @pytest.mark.core
    @pytest.mark.parametrize("kind", [MetricKind.GAUGE, MetricKind.HISTOGRAM])
    def test_total_suffix_reserved_for_counters(self, kind: MetricKind) -> None:
        with pytest.raises(InvalidMetricName, match="reserved for counters"):
            validate_metric_name("http.requests_total", kind)

    @pytest.mark.core
    def test_error_carries_name_and_reason(self) -> None:
        with pytest.raises(InvalidMetricName) as info:
            validate_metric_name("bad", MetricKind.GAUGE)
        assert info.value.name == "bad"
        assert info.value.reason


class TestValidateLabelKey:
    """Tests for validate_label_key()."""

    @pytest.mark.core
    @pytest.mark.parametrize("key", ["method", "status_code", "_private", "Region"])
    def test_accepts_identifiers(self, key: str) -> None:
        assert validate_label_key(key) == key

    @pytest.mark.core
    @pytest.mark.parametrize("key", ["", "status-code", "1st", "a b"])
    def test_rejects_non_identifiers(self, key: str) -> None:
        with pytest.raises(InvalidMetricName):
            validate_label_key(key)

    @pytest.mark.core
    def test_double_underscore_prefix_is_reserved(self) -> None:
        with pytest.raises(InvalidMetricName, match="reserved"):
            validate_label_key("__name")
