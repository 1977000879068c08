"""Configuration for the telemetry runtime."""

import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from telemetrykit.core.aggregators import (
    DEFAULT_HISTOGRAM_BUCKETS,
    DEFAULT_QUANTILES,
    validate_buckets,
    validate_quantiles,
)
from telemetrykit.core.errors import ConfigurationError
from telemetrykit.core.models import Level
from telemetrykit.core.redaction import RedactionRule, default_rules

CardinalityPolicy = Literal["drop", "overflow"]

_POLICIES = ("drop", "overflow")


def _default_instance_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


@dataclass(frozen=True)
class TelemetryConfig:
    """Telemetry settings, fixed at startup.

    Attributes:
        minimum_level: Records below this level are dropped before any work.
        cardinality_ceiling: Maximum distinct label sets per metric name.
        cardinality_policy: ``"drop"`` discards observations beyond the
            ceiling, ``"overflow"`` folds them into one overflow series.
        loop_guard_threshold: Emissions allowed per call site per window.
        loop_guard_window: Loop guard window length in seconds.
        loop_guard_max_keys: Call sites tracked at once; the oldest
            are evicted beyond this.
        background_sweep: Start the loop guard expiry sweeper when the
            process runtime is initialized, so bursts that end in silence
            are still summarized.
        redaction_rules: Rules applied to log fields and label values.
        histogram_buckets: Default bucket bounds for histograms.
        quantiles: Quantiles estimated in histogram snapshots.
        service_name: Ambient ``service`` field on every record.
        instance_id: Ambient ``instance`` field on every record.
        ambient_fields: Extra process-wide fields on every record.
    """

    minimum_level: Level = Level.INFO
    cardinality_ceiling: int = 2000
    cardinality_policy: CardinalityPolicy = "drop"
    loop_guard_threshold: int = 3
    loop_guard_window: float = 10.0
    loop_guard_max_keys: int = 1024
    background_sweep: bool = True
    redaction_rules: tuple[RedactionRule, ...] = field(default_factory=default_rules)
    histogram_buckets: tuple[float, ...] = DEFAULT_HISTOGRAM_BUCKETS
    quantiles: tuple[float, ...] = DEFAULT_QUANTILES
    service_name: str = "unknown-service"
    instance_id: str = field(default_factory=_default_instance_id)
    ambient_fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "minimum_level", Level.parse(self.minimum_level))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if self.cardinality_ceiling < 1:
            raise ConfigurationError("cardinality_ceiling must be >= 1")
        if self.cardinality_policy not in _POLICIES:
            raise ConfigurationError(
                f"cardinality_policy must be one of {_POLICIES}, "
                f"got {self.cardinality_policy!r}"
            )
        if self.loop_guard_threshold < 1:
            raise ConfigurationError("loop_guard_threshold must be >= 1")
        if self.loop_guard_window <= 0:
            raise ConfigurationError("loop_guard_window must be > 0")
        if self.loop_guard_max_keys < 1:
            raise ConfigurationError("loop_guard_max_keys must be >= 1")
        object.__setattr__(self, "redaction_rules", tuple(self.redaction_rules))
        object.__setattr__(
            self, "histogram_buckets", validate_buckets(self.histogram_buckets)
        )
        object.__setattr__(self, "quantiles", validate_quantiles(self.quantiles))
        object.__setattr__(self, "ambient_fields", dict(self.ambient_fields))

    def identity_fields(self) -> dict[str, Any]:
        """Ambient fields stamped on every record; these win over caller fields."""
        return {
            **self.ambient_fields,
            "service": self.service_name,
            "instance": self.instance_id,
        }

    def with_overrides(self, **changes: Any) -> "TelemetryConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        prefix: str = "TELEMETRY_",
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "TelemetryConfig":
        """Build a config from environment variables.

        Recognized variables (with the default prefix): ``TELEMETRY_MIN_LEVEL``,
        ``TELEMETRY_CARDINALITY_CEILING``, ``TELEMETRY_CARDINALITY_POLICY``,
        ``TELEMETRY_LOOP_GUARD_THRESHOLD``, ``TELEMETRY_LOOP_GUARD_WINDOW``,
        ``TELEMETRY_LOOP_GUARD_MAX_KEYS``, ``TELEMETRY_BACKGROUND_SWEEP``,
        ``TELEMETRY_HISTOGRAM_BUCKETS`` (comma separated),
        ``TELEMETRY_SERVICE_NAME`` and ``TELEMETRY_INSTANCE_ID``.

        Args:
            prefix: Variable name prefix.
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Explicit values that win over the environment.

        Raises:
            ConfigurationError: If a variable holds an unparseable value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        parsers: dict[str, tuple[str, Any]] = {
            "MIN_LEVEL": ("minimum_level", str),
            "CARDINALITY_CEILING": ("cardinality_ceiling", int),
            "CARDINALITY_POLICY": ("cardinality_policy", lambda s: s.strip().lower()),
            "LOOP_GUARD_THRESHOLD": ("loop_guard_threshold", int),
            "LOOP_GUARD_WINDOW": ("loop_guard_window", float),
            "LOOP_GUARD_MAX_KEYS": ("loop_guard_max_keys", int),
            "BACKGROUND_SWEEP": ("background_sweep", _parse_bool),
            "HISTOGRAM_BUCKETS": (
                "histogram_buckets",
                lambda s: tuple(float(p) for p in s.split(",") if p.strip()),
            ),
            "SERVICE_NAME": ("service_name", str),
            "INSTANCE_ID": ("instance_id", str),
        }
        for suffix, (attr, parse) in parsers.items():
            raw = env.get(prefix + suffix)
            if raw is None or raw == "":
                continue
            try:
                values[attr] = parse(raw)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{prefix}{suffix}={raw!r} is not valid: {exc}"
                ) from exc
        values.update(overrides)
        return cls(**values)
