"""ASGI adapter: request instrumentation and read-only telemetry endpoints.

Framework-agnostic; works with any ASGI server (uvicorn, hypercorn,
daphne) and any ASGI framework without importing one.
"""

import fnmatch
import json
import math
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any, Protocol
from urllib.parse import parse_qs

from telemetrykit.core.context import log_context
from telemetrykit.core.emitter import LogEmitter
from telemetrykit.core.encoding.ndjson import encode_records, encode_snapshot
from telemetrykit.core.models import Level, LogRecord
from telemetrykit.core.registry import MetricFamily
from telemetrykit.runtime import Telemetry, get_telemetry

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

REQUESTS_METRIC = "http.requests_total"
DURATION_METRIC = "http.request_duration_seconds"


class ReadableLogSink(Protocol):
    def read(self, since: float = 0, level: Level | str | None = None) -> list[LogRecord]: ...


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


def _parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse the 'since' parameter; negative, NaN, infinite or invalid gives 0.0."""
    try:
        value = float(params.get("since", ["0"])[0])
    except ValueError:
        return 0.0
    if value < 0 or not math.isfinite(value):
        return 0.0
    return value


def _parse_level_param(params: dict[str, list[str]]) -> Level | None:
    raw = params.get("level", [""])[0]
    if not raw:
        return None
    try:
        return Level.parse(raw)
    except ValueError:
        return None


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract or generate a request ID from ASGI scope headers.

    Searches for the specified header (case-insensitive). If not found,
    generates a new UUID.

    Args:
        scope: ASGI scope dictionary containing request metadata.
        header_name: Name of the header to search for.

    Returns:
        Request ID string (either from header or newly generated UUID).
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return value.decode("utf-8", errors="replace")
    return str(uuid.uuid4())


def _level_for_status(status_code: int) -> Level:
    """Map an HTTP status to a record level: 4xx WARN, 5xx ERROR, else INFO."""
    if 400 <= status_code < 500:
        return Level.WARN
    if 500 <= status_code < 600:
        return Level.ERROR
    return Level.INFO


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


class ASGIObservabilityMiddleware:
    """ASGI middleware recording one log record and two metrics per request.

    Each HTTP request increments ``http.requests_total`` (method, path,
    status), observes ``http.request_duration_seconds`` (method, path) and
    emits one record: INFO for 2xx, WARN for 4xx, ERROR for 5xx. An
    exception from the wrapped app is logged with its error payload,
    counted as status 500 and re-raised. The request id is placed in the
    log context, so records emitted by the app carry it too.

    Example:
        ```python
        app = ASGIObservabilityMiddleware(app, exclude_paths=["/health", "/internal/*"])
        ```
    """

    def __init__(
        self,
        app: ASGIApp,
        telemetry: Telemetry | None = None,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            telemetry: Runtime to record into; defaults to ``get_telemetry()``
                resolved on the first request.
            exclude_paths: Paths that are neither logged nor measured, as
                fnmatch patterns such as "/health" or "/internal/*".
            request_id_header: Header carrying the request ID.
        """
        self.app = app
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header
        self._telemetry = telemetry
        self._requests: MetricFamily | None = None
        self._duration: MetricFamily | None = None
        self._logger: LogEmitter | None = None

    @property
    def telemetry(self) -> Telemetry:
        if self._telemetry is None:
            self._telemetry = get_telemetry()
        return self._telemetry

    def _instruments(self) -> tuple[MetricFamily, MetricFamily, LogEmitter]:
        if self._requests is None or self._duration is None or self._logger is None:
            telemetry = self.telemetry
            self._requests = telemetry.registry.counter(
                REQUESTS_METRIC, ("method", "path", "status"),
                description="HTTP requests handled",
            )
            self._duration = telemetry.registry.histogram(
                DURATION_METRIC, ("method", "path"),
                description="HTTP request latency in seconds",
            )
            self._logger = telemetry.get_logger("telemetrykit.asgi", guarded=False)
        return self._requests, self._duration, self._logger

    def _path_excluded(self, path: str) -> bool:
        """True when ``path`` matches an ``exclude_paths`` pattern."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the wrapped app, recording http requests and passing other scopes through."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request_id = _extract_request_id(scope, self.request_id_header)
        captured: dict[str, Any] = {"status": None, "body_size": 0}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
            elif message["type"] == "http.response.body":
                captured["body_size"] += len(message.get("body", b""))
            await send(message)

        with log_context(request_id=request_id):
            try:
                await self.app(scope, receive, wrapped_send)
            except Exception as exc:
                self._record(scope, request_id, 500, captured["body_size"], start_time, exc)
                raise
            self._record(
                scope, request_id, captured["status"] or 0, captured["body_size"], start_time
            )

    def _record(
        self,
        scope: Scope,
        request_id: str,
        status: int,
        body_size: int,
        start_time: float,
        error: BaseException | None = None,
    ) -> None:
        path = scope.get("path", "")
        if self._path_excluded(path):
            return
        duration = time.perf_counter() - start_time
        method = scope.get("method", "")
        requests, latency, logger = self._instruments()
        requests.labels(method=method, path=path, status=str(status)).inc()
        latency.labels(method=method, path=path).observe(duration)
        logger.log(
            _level_for_status(status),
            "{method} {path} {status_code}",
            {
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status,
                "response_body_size": body_size,
                "duration_ms": round(duration * 1000, 3),
            },
            error,
            site="telemetrykit.asgi",
        )


def create_asgi_app(
    telemetry: Telemetry | None = None, log_sink: ReadableLogSink | None = None
) -> ASGIApp:
    """Create an ASGI app serving ``/metrics`` and ``/logs`` as NDJSON.

    ``/metrics`` returns the current registry snapshot, one series per
    line. ``/logs`` (only when ``log_sink`` can be read, e.g. a
    ``RingBufferLogSink``) returns buffered records and accepts ``since``
    and ``level`` query parameters.

    Args:
        telemetry: Runtime to expose; defaults to ``get_telemetry()``.
        log_sink: Readable sink backing the ``/logs`` endpoint.

    Returns:
        ASGI application callable.
    """

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        if path == "/metrics":
            runtime = telemetry if telemetry is not None else get_telemetry()
            try:
                body = encode_snapshot(runtime.registry.snapshot())
            except Exception:
                runtime.emitter.exception("error encoding metrics endpoint")
                await _send_response(
                    send, 500, "application/json",
                    json.dumps({"error": "Internal Server Error"}),
                )
                return
            await _send_response(send, 200, "application/x-ndjson", body)
        elif path == "/logs" and log_sink is not None:
            params = _parse_query_params(scope)
            records = log_sink.read(
                since=_parse_since_param(params), level=_parse_level_param(params)
            )
            await _send_response(send, 200, "application/x-ndjson", encode_records(records))
        else:
            await _send_response(send, 404, "text/plain", "Not Found")

    return app
