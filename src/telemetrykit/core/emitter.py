"""Structured log emitter.

``LogEmitter.log`` runs a fixed pipeline:

1. level gating (nothing is built or formatted for suppressed levels);
2. loop guard admission per ``(call site, message, level)``;
3. field composition: context < caller < ambient (ambient fields win, so a
   caller cannot overwrite identity fields such as ``service``);
4. redaction of every field value;
5. hand-off to the sink. Sink failures are counted and the record dropped.
"""

import sys
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from telemetrykit.core.context import get_log_context
from telemetrykit.core.errors import LabelSetTooLarge, SinkWriteFailure, TelemetryError
from telemetrykit.core.labels import MAX_LABELS, LabelSet
from telemetrykit.core.loop_guard import BurstSummary, LoopGuard
from telemetrykit.core.models import ErrorInfo, Level, LogRecord
from telemetrykit.core.ports import LogSinkPort
from telemetrykit.core.redaction import NULL_REDACTOR, Redactor
from telemetrykit.core.registry import SeriesRegistry

SINK_FAILURES_METRIC = "telemetry.sink_write_failures_total"

FieldsSource = Mapping[str, Any] | Callable[[], Mapping[str, Any]] | None
MessageSource = str | Callable[[], str]
ErrorSource = BaseException | ErrorInfo | None

_DIAGNOSTIC_SITE = "telemetrykit.registry"


def _caller_site(stacklevel: int) -> str:
    try:
        frame = sys._getframe(stacklevel + 1)
    except ValueError:
        return "<unknown>"
    return f"{frame.f_code.co_filename}:{frame.f_lineno}"


def _bounded_fields(composed: dict[str, Any], keep: Mapping[str, Any]) -> LabelSet:
    try:
        return LabelSet.of(composed)
    except LabelSetTooLarge:
        room = MAX_LABELS - len(keep) - 1
        extra = [k for k in sorted(composed) if k not in keep][:room]
        trimmed = {k: composed[k] for k in extra}
        trimmed.update({k: composed[k] for k in keep})
        trimmed["fields_truncated"] = True
        return LabelSet.of(trimmed)


class _LevelMethods(ABC):
    """Level shorthands shared by emitters and bound emitters."""

    @abstractmethod
    def log(
        self,
        level: Level | int | str,
        message: MessageSource,
        fields: FieldsSource = None,
        error: ErrorSource = None,
        *,
        site: str | None = None,
        stacklevel: int = 1,
    ) -> None: ...

    def debug(self, message: MessageSource, fields: FieldsSource = None, **kw: Any) -> None:
        self.log(Level.DEBUG, message, fields, stacklevel=2, **kw)

    def info(self, message: MessageSource, fields: FieldsSource = None, **kw: Any) -> None:
        self.log(Level.INFO, message, fields, stacklevel=2, **kw)

    def warn(self, message: MessageSource, fields: FieldsSource = None, **kw: Any) -> None:
        self.log(Level.WARN, message, fields, stacklevel=2, **kw)

    warning = warn

    def error(
        self,
        message: MessageSource,
        fields: FieldsSource = None,
        error: ErrorSource = None,
        **kw: Any,
    ) -> None:
        self.log(Level.ERROR, message, fields, error, stacklevel=2, **kw)

    def critical(
        self,
        message: MessageSource,
        fields: FieldsSource = None,
        error: ErrorSource = None,
        **kw: Any,
    ) -> None:
        self.log(Level.CRITICAL, message, fields, error, stacklevel=2, **kw)

    def exception(self, message: MessageSource, fields: FieldsSource = None, **kw: Any) -> None:
        """Log at ERROR with the exception currently being handled."""
        self.log(Level.ERROR, message, fields, sys.exc_info()[1], stacklevel=2, **kw)


class LogEmitter(_LevelMethods):
    """Builds structured records and hands them to a sink.

    Args:
        sink: Destination implementing ``LogSinkPort``.
        min_level: Records below this level are dropped at once.
        ambient_fields: Process-wide fields on every record; they win over
            caller fields of the same name.
        redactor: Applied to every field value.
        loop_guard: Coalesces repeated emissions; None disables it.
        registry: If given, sink failures are counted in
            ``telemetry.sink_write_failures_total``.
        clock: Wall-clock source for record timestamps.
        name: Logger name stamped on records.

    Example:
        ```python
        emitter = LogEmitter(StreamLogSink(), ambient_fields={"service": "billing"})
        emitter.info("charge {charge_id} captured", {"charge_id": "ch_1", "card": "4111..."})
        emitter.info("expensive", lambda: {"state": dump_state()})  # built only if enabled
        ```
    """

    def __init__(
        self,
        sink: LogSinkPort,
        *,
        min_level: Level | int | str = Level.INFO,
        ambient_fields: Mapping[str, Any] | None = None,
        redactor: Redactor | None = None,
        loop_guard: LoopGuard | None = None,
        registry: SeriesRegistry | None = None,
        clock: Callable[[], float] = time.time,
        name: str | None = None,
    ) -> None:
        self.sink = sink
        self.min_level = Level.parse(min_level)
        self.name = name
        self._ambient = dict(ambient_fields or {})
        self._redactor = redactor if redactor is not None else NULL_REDACTOR
        self._guard = loop_guard
        self._clock = clock
        self._failure_lock = threading.Lock()
        self._sink_failures = 0
        self.last_sink_failure: SinkWriteFailure | None = None
        self._failure_counter = (
            registry.counter(SINK_FAILURES_METRIC, ("sink",)) if registry is not None else None
        )
        self._batch_keys: ContextVar[set[Any] | None] = ContextVar(
            f"telemetrykit_batch_{id(self)}", default=None
        )

    @property
    def sink_failures(self) -> int:
        return self._sink_failures

    @property
    def loop_guard(self) -> LoopGuard | None:
        return self._guard

    def enabled_for(self, level: Level | int) -> bool:
        return level >= self.min_level

    def log(
        self,
        level: Level | int | str,
        message: MessageSource,
        fields: FieldsSource = None,
        error: ErrorSource = None,
        *,
        site: str | None = None,
        stacklevel: int = 1,
    ) -> None:
        """Emit one structured record.

        Args:
            level: Record level. Attaching ``error`` raises it to at least ERROR.
            message: Message template, or a zero-argument callable producing it.
            fields: Caller fields, or a zero-argument callable producing them.
                Callables are only invoked when the level is enabled.
            error: Exception (or prepared ErrorInfo) to attach with its stack
                and cause chain.
            site: Loop guard call site; defaults to the caller's ``file:line``.
            stacklevel: Frames between the caller and this method.
        """
        if not isinstance(level, Level):
            level = Level.parse(level)
        if error is not None and level < Level.ERROR:
            level = Level.ERROR
        if level < self.min_level:
            return
        text = message() if callable(message) else message
        if site is None:
            site = _caller_site(stacklevel)
        if self._guard is not None:
            key = (site, text, int(level))
            batch = self._batch_keys.get()
            if batch is not None:
                batch.add(key)
            admission = self._guard.admit(key)
            if admission.summary is not None:
                self._emit_summary(admission.summary)
            if not admission.allowed:
                return
        caller_fields = fields() if callable(fields) else fields
        self._write(self._build(level, text, caller_fields, error, site))

    def _build(
        self,
        level: Level,
        message: str,
        fields: Mapping[str, Any] | None,
        error: ErrorSource,
        site: str | None,
    ) -> LogRecord:
        composed = {**get_log_context(), **(fields or {}), **self._ambient}
        redacted = self._redactor.redact_fields(composed)
        if isinstance(error, BaseException):
            error = ErrorInfo.from_exception(error)
        return LogRecord(
            timestamp=self._clock(),
            level=level,
            message=message,
            fields=_bounded_fields(redacted, self._ambient),
            error=error,
            site=site,
            logger=self.name,
        )

    def _write(self, record: LogRecord) -> None:
        try:
            self.sink.write(record)
        except Exception as exc:
            failure = SinkWriteFailure(self.sink, exc)
            with self._failure_lock:
                self._sink_failures += 1
                self.last_sink_failure = failure
            if self._failure_counter is not None:
                self._failure_counter.labels(sink=type(self.sink).__name__).inc()

    def _emit_summary(self, summary: BurstSummary) -> None:
        site, message, level = summary.key  # type: ignore[misc]
        # guard times are monotonic; shift them onto the record clock
        shift = self._clock() - self._guard.clock() if self._guard is not None else 0.0
        record = self._build(
            Level(level),
            f"{message} [{summary.suppressed} suppressed]",
            {
                "suppressed_count": summary.suppressed,
                "first_seen": summary.first_seen + shift,
                "last_seen": summary.last_seen + shift,
            },
            None,
            site,
        )
        self._write(record)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Mark a loop; on exit, bursts started inside it are summarized.

        Example:
            ```python
            with emitter.batch():
                for item in items:
                    emitter.info("processing item", {"item": item.id})
            # -> first N records, then "processing item [K suppressed]"
            ```
        """
        keys: set[Any] = set()
        token = self._batch_keys.set(keys)
        try:
            yield
        finally:
            self._batch_keys.reset(token)
            if self._guard is not None:
                for summary in self._guard.end_batch(keys):
                    self._emit_summary(summary)

    def end_batch(self) -> None:
        """Close every open burst and emit pending summaries."""
        if self._guard is not None:
            for summary in self._guard.end_batch():
                self._emit_summary(summary)

    def flush(self) -> None:
        """Emit summaries for bursts whose window has expired."""
        if self._guard is not None:
            for summary in self._guard.sweep():
                self._emit_summary(summary)

    def bind(self, **fields: Any) -> "BoundEmitter":
        return BoundEmitter(self, fields)

    def report_diagnostic(self, error: TelemetryError, metric: str) -> None:
        """Registry diagnostic hook: log a runtime metric problem at WARN.

        The registry already limits each ``(error kind, metric)`` pair to one
        report per window, so each pair gets its own loop guard key here.
        """
        kind = type(error).__name__
        self.log(
            Level.WARN,
            f"metric diagnostic: {kind} on {metric}",
            {"error_kind": kind, "metric": metric, "detail": str(error)},
            site=f"{_DIAGNOSTIC_SITE}:{kind}:{metric}",
        )


class BoundEmitter(_LevelMethods):
    """An emitter view that adds fixed fields below caller fields."""

    def __init__(self, parent: LogEmitter, fields: Mapping[str, Any]) -> None:
        self._parent = parent
        self._fields = dict(fields)

    def bind(self, **fields: Any) -> "BoundEmitter":
        return BoundEmitter(self._parent, {**self._fields, **fields})

    def log(
        self,
        level: Level | int | str,
        message: MessageSource,
        fields: FieldsSource = None,
        error: ErrorSource = None,
        *,
        site: str | None = None,
        stacklevel: int = 1,
    ) -> None:
        bound = self._fields

        def merged() -> Mapping[str, Any]:
            extra = fields() if callable(fields) else fields
            return {**bound, **(extra or {})}

        self._parent.log(
            level, message, merged, error, site=site, stacklevel=stacklevel + 1
        )
