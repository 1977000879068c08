"""Process-wide telemetry runtime.

``init_telemetry`` wires configuration, redactor, registry and emitter
together once at startup. ``get_telemetry`` returns that instance and
creates a default one on first use if startup code never called
``init_telemetry``. Both start the loop guard sweeper unless
``background_sweep`` is off. There is no teardown; the runtime lives until
exit.
"""

import threading
from typing import Any

from telemetrykit.adapters.sinks.stream import StreamLogSink
from telemetrykit.core.background import PeriodicWorker
from telemetrykit.core.config import TelemetryConfig
from telemetrykit.core.emitter import LogEmitter
from telemetrykit.core.errors import ConfigurationError
from telemetrykit.core.loop_guard import LoopGuard
from telemetrykit.core.ports import LogSinkPort
from telemetrykit.core.redaction import Redactor
from telemetrykit.core.registry import SeriesRegistry


class Telemetry:
    """Bundle of the configured redactor, registry and emitter.

    Args:
        config: Settings; defaults to ``TelemetryConfig()``.
        sink: Log sink; defaults to NDJSON lines on stderr.
    """

    def __init__(
        self, config: TelemetryConfig | None = None, sink: LogSinkPort | None = None
    ) -> None:
        self.config = config or TelemetryConfig()
        self.redactor = Redactor(self.config.redaction_rules)
        self.registry = SeriesRegistry(self.config, self.redactor)
        self.sink: LogSinkPort = sink if sink is not None else StreamLogSink()
        self.loop_guard = LoopGuard(
            threshold=self.config.loop_guard_threshold,
            window=self.config.loop_guard_window,
            max_keys=self.config.loop_guard_max_keys,
        )
        self.emitter = self._new_emitter(None)
        self.registry.set_diagnostic_reporter(self.emitter.report_diagnostic)
        self._loggers: dict[tuple[str, bool], LogEmitter] = {}
        self._loggers_lock = threading.Lock()
        self._sweeper: PeriodicWorker | None = None

    def _new_emitter(self, name: str | None, guarded: bool = True) -> LogEmitter:
        return LogEmitter(
            self.sink,
            min_level=self.config.minimum_level,
            ambient_fields=self.config.identity_fields(),
            redactor=self.redactor,
            loop_guard=self.loop_guard if guarded else None,
            registry=self.registry,
            name=name,
        )

    def get_logger(self, name: str | None = None, *, guarded: bool = True) -> LogEmitter:
        """Return a named emitter sharing this runtime's sink, guard and registry.

        Args:
            name: Logger name stamped on records.
            guarded: False returns an emitter that bypasses the loop guard,
                for per-event records such as access logs.
        """
        if name is None and guarded:
            return self.emitter
        key = (name or "", guarded)
        emitter = self._loggers.get(key)
        if emitter is None:
            with self._loggers_lock:
                emitter = self._loggers.get(key)
                if emitter is None:
                    emitter = self._loggers[key] = self._new_emitter(name, guarded)
        return emitter

    def start_background(self, interval: float | None = None) -> None:
        """Start the loop guard expiry sweeper.

        Args:
            interval: Seconds between sweeps; defaults to half the loop guard
                window.
        """
        if self._sweeper is None:
            every = interval or self.config.loop_guard_window / 2
            self._sweeper = PeriodicWorker(every, self.emitter.flush, "telemetrykit-sweeper")
        self._sweeper.start()

    def stop_background(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()

    def flush(self) -> None:
        """Emit summaries for every open burst and flush the sink if it can."""
        self.emitter.end_batch()
        flush = getattr(self.sink, "flush", None)
        if callable(flush):
            flush()


_lock = threading.Lock()
_telemetry: Telemetry | None = None


def init_telemetry(
    config: TelemetryConfig | None = None, sink: LogSinkPort | None = None, **overrides: Any
) -> Telemetry:
    """Initialize the process-wide runtime. Call once at startup.

    Args:
        config: Settings; defaults to ``TelemetryConfig.from_env()``.
        sink: Log sink; defaults to NDJSON on stderr.
        **overrides: Config fields overriding ``config``.

    Raises:
        ConfigurationError: If the runtime was already initialized.
    """
    global _telemetry
    with _lock:
        if _telemetry is not None:
            raise ConfigurationError("telemetry is already initialized")
        base = config or TelemetryConfig.from_env()
        if overrides:
            base = base.with_overrides(**overrides)
        _telemetry = Telemetry(base, sink)
        if base.background_sweep:
            _telemetry.start_background()
        return _telemetry


def get_telemetry() -> Telemetry:
    """Return the runtime, creating a default one on first use."""
    global _telemetry
    current = _telemetry
    if current is not None:
        return current
    with _lock:
        if _telemetry is None:
            _telemetry = Telemetry(TelemetryConfig.from_env())
            if _telemetry.config.background_sweep:
                _telemetry.start_background()
        return _telemetry


def reset_telemetry() -> None:
    """Drop the runtime so the next call re-initializes. For tests only."""
    global _telemetry
    with _lock:
        if _telemetry is not None:
            _telemetry.stop_background()
        _telemetry = None
