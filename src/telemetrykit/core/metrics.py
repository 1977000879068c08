"""Metric helper functions bound to the process-wide registry."""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from telemetrykit.core.models import SeriesSnapshot
from telemetrykit.core.registry import MetricFamily
from telemetrykit.runtime import get_telemetry


def counter(
    name: str,
    label_keys: Iterable[str] = (),
    description: str = "",
) -> MetricFamily:
    """Register (or fetch) a counter on the default registry.

    Args:
        name: Metric name ending in ``_total`` (e.g., "http.requests_total")
        label_keys: Dimension label keys
        description: Help text

    Returns:
        MetricFamily handle
    """
    return get_telemetry().registry.counter(name, label_keys, description=description)


def gauge(
    name: str,
    label_keys: Iterable[str] = (),
    description: str = "",
) -> MetricFamily:
    """Register (or fetch) a gauge on the default registry.

    Args:
        name: Metric name (e.g., "worker.queue_depth")
        label_keys: Dimension label keys
        description: Help text

    Returns:
        MetricFamily handle
    """
    return get_telemetry().registry.gauge(name, label_keys, description=description)


def histogram(
    name: str,
    label_keys: Iterable[str] = (),
    description: str = "",
    buckets: Sequence[float] | None = None,
) -> MetricFamily:
    """Register (or fetch) a histogram on the default registry.

    Args:
        name: Metric name (e.g., "http.request_duration_seconds")
        label_keys: Dimension label keys
        description: Help text
        buckets: Bucket boundaries (default: the configured ladder)

    Returns:
        MetricFamily handle
    """
    return get_telemetry().registry.histogram(
        name, label_keys, description=description, buckets=buckets
    )


def observe(
    handle: MetricFamily, label_values: Mapping[str, Any] | None, value: float
) -> None:
    get_telemetry().registry.observe(handle, label_values, value)


def snapshot() -> list[SeriesSnapshot]:
    return get_telemetry().registry.snapshot()
