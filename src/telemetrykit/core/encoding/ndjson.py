"""NDJSON encoding for log records and registry snapshots."""

import json
import math
from collections.abc import Iterable
from typing import Any

from telemetrykit.core.models import HistogramSummary, LogRecord, SeriesSnapshot


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _json_fields(fields: dict[str, Any]) -> dict[str, Any]:
    # JSON has no NaN or Infinity; they become null
    return {
        key: _finite(value) if isinstance(value, float) else value
        for key, value in fields.items()
    }


def record_to_dict(record: LogRecord) -> dict[str, Any]:
    """Convert a log record to a JSON-ready dict.

    The message is rendered against the record's fields; the raw template
    is kept under ``template``.
    """
    obj: dict[str, Any] = {
        "timestamp": record.timestamp,
        "level": record.level.name,
        "message": record.render(),
        "template": record.message,
        "fields": _json_fields(record.fields.to_dict()),
    }
    if record.logger is not None:
        obj["logger"] = record.logger
    if record.site is not None:
        obj["site"] = record.site
    if record.error is not None:
        obj["error"] = {
            "type": record.error.type,
            "message": record.error.message,
            "stack": record.error.stack,
            "causes": [list(cause) for cause in record.error.causes],
        }
    return obj


def encode_record(record: LogRecord) -> str:
    """Encode one record as a single JSON line (no trailing newline)."""
    return json.dumps(record_to_dict(record), default=str, allow_nan=False)


def encode_records(records: Iterable[LogRecord]) -> str:
    """Encode log records to newline-delimited JSON.

    Args:
        records: An iterable of LogRecord objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no records.
    """
    lines = [encode_record(record) for record in records]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _summary_to_dict(summary: HistogramSummary) -> dict[str, Any]:
    return {
        "count": summary.count,
        "sum": _finite(summary.sum),
        "min": _finite(summary.min),
        "max": _finite(summary.max),
        "buckets": [
            ["+Inf" if math.isinf(bound) else bound, count]
            for bound, count in summary.buckets
        ],
        "quantiles": {str(q): _finite(v) for q, v in summary.quantiles.items()},
    }


def snapshot_to_dicts(snapshot: Iterable[SeriesSnapshot]) -> list[dict[str, Any]]:
    """Convert snapshot entries to JSON-ready dicts.

    Non-finite values, which JSON cannot carry, become None.
    """
    out = []
    for series in snapshot:
        value = (
            _summary_to_dict(series.value)
            if isinstance(series.value, HistogramSummary)
            else _finite(series.value)
        )
        out.append(
            {
                "name": series.name,
                "kind": series.kind.value,
                "labels": series.labels.to_dict(),
                "value": value,
            }
        )
    return out


def encode_snapshot(snapshot: Iterable[SeriesSnapshot]) -> str:
    """Encode a registry snapshot to NDJSON, one series per line."""
    lines = [json.dumps(obj, allow_nan=False) for obj in snapshot_to_dicts(snapshot)]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
