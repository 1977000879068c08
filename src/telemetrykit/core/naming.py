"""Metric name and label key validation.

Metric names follow ``component.subject[.unit]``: two or more dot separated
segments of lowercase letters, digits and underscores, e.g.
``http.requests_total`` or ``db.query_duration_seconds``.
"""

import re

from telemetrykit.core.errors import InvalidMetricName
from telemetrykit.core.models import MetricKind

MAX_NAME_LENGTH = 200

_SEGMENT = r"[a-z][a-z0-9_]*"
_NAME_RE = re.compile(rf"^{_SEGMENT}(\.{_SEGMENT})+$")
_LABEL_KEY_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

COUNTER_SUFFIX = "_total"


def validate_metric_name(name: str, kind: MetricKind) -> str:
    """Validate a metric name against the naming convention for its kind.

    Args:
        name: Proposed metric name.
        kind: The metric kind being registered.

    Returns:
        The name, unchanged.

    Raises:
        InvalidMetricName: If the name is empty, malformed, too long, or its
            unit suffix does not fit the kind.
    """
    if not name:
        raise InvalidMetricName(name, "name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidMetricName(name, f"longer than {MAX_NAME_LENGTH} characters")
    if not _NAME_RE.match(name):
        raise InvalidMetricName(
            name,
            "expected dot separated lowercase segments like 'component.subject'",
        )
    is_total = name.endswith(COUNTER_SUFFIX)
    if kind is MetricKind.COUNTER and not is_total:
        raise InvalidMetricName(name, f"counter names must end with {COUNTER_SUFFIX!r}")
    if kind is not MetricKind.COUNTER and is_total:
        raise InvalidMetricName(
            name, f"{COUNTER_SUFFIX!r} suffix is reserved for counters"
        )
    return name


def validate_label_key(key: str) -> str:
    """Validate a label key.

    Keys starting with a double underscore are reserved for internal use.

    Raises:
        InvalidMetricName: If the key is malformed or reserved.
    """
    if not _LABEL_KEY_RE.match(key):
        raise InvalidMetricName(key, "label keys must match [a-zA-Z_][a-zA-Z0-9_]*")
    if key.startswith("__"):
        raise InvalidMetricName(key, "label keys starting with '__' are reserved")
    return key
