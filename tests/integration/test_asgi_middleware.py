"""Integration tests for ASGIObservabilityMiddleware.

Tests verify that every HTTP request produces one log record and two metric
observations, with the log level chosen from the status code:
- 200-299 (2xx) → INFO
- 400-499 (4xx) → WARN
- 500-599 (5xx) → ERROR
"""

import pytest

from telemetrykit.adapters.frameworks.asgi import (
    DURATION_METRIC,
    REQUESTS_METRIC,
    ASGIObservabilityMiddleware,
)
from telemetrykit.adapters.sinks.in_memory import InMemoryLogSink
from telemetrykit.core.context import get_log_context
from telemetrykit.core.labels import LabelSet
from telemetrykit.core.models import Level
from telemetrykit.runtime import Telemetry, init_telemetry

pytestmark = [
    pytest.mark.integration,
    pytest.mark.asgi,
    pytest.mark.tier(2),
    pytest.mark.tra("Adapter.ASGI.Middleware"),
]


def status_app(status: int):
    """App that responds with the given status."""

    async def app(scope, receive, send):
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [(b"content-type", b"text/plain")],
            }
        )
        await send({"type": "http.response.body", "body": b"hello"})

    return app


async def failing_app(scope, receive, send):
    raise RuntimeError("handler exploded")


def _counter_value(telemetry: Telemetry, **labels: str) -> float | None:
    family = telemetry.registry.get(REQUESTS_METRIC)
    return family.labels(**labels).value if family is not None else None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "level"),
    [(200, Level.INFO), (204, Level.INFO), (404, Level.WARN), (503, Level.ERROR)],
)
async def test_log_level_follows_status(
    telemetry: Telemetry,
    sink: InMemoryLogSink,
    asgi_scope,
    asgi_receive,
    asgi_send_capture,
    status: int,
    level: Level,
) -> None:
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(status_app(status), telemetry)
    await middleware(asgi_scope(path="/orders"), asgi_receive, send)
    (record,) = sink.records
    assert record.level is level
    assert record.render() == f"GET /orders {status}"
    assert record.fields["status_code"] == status
    assert record.fields["response_body_size"] == 5


@pytest.mark.asyncio
async def test_records_counter_and_histogram(
    telemetry: Telemetry, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    send, responses = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(status_app(200), telemetry)
    for _ in range(3):
        await middleware(asgi_scope(method="POST", path="/items"), asgi_receive, send)

    assert _counter_value(telemetry, method="POST", path="/items", status="200") == 3.0
    latency = telemetry.registry.get(DURATION_METRIC)
    assert latency is not None
    summary = latency.labels(method="POST", path="/items").value
    assert summary.count == 3
    assert summary.min >= 0
    assert [m["type"] for m in responses].count("http.response.start") == 3


@pytest.mark.asyncio
async def test_request_logs_are_not_coalesced(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    """Access records bypass the loop guard; every request is logged."""
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(status_app(200), telemetry)
    for _ in range(telemetry.config.loop_guard_threshold + 5):
        await middleware(asgi_scope(), asgi_receive, send)
    assert len(sink.records) == telemetry.config.loop_guard_threshold + 5


@pytest.mark.asyncio
async def test_exception_is_logged_counted_and_reraised(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(failing_app, telemetry)
    with pytest.raises(RuntimeError, match="handler exploded"):
        await middleware(asgi_scope(path="/boom"), asgi_receive, send)

    (record,) = sink.records
    assert record.level is Level.ERROR
    assert record.error is not None
    assert record.error.type == "RuntimeError"
    assert record.fields["status_code"] == 500
    assert _counter_value(telemetry, method="GET", path="/boom", status="500") == 1.0


@pytest.mark.asyncio
async def test_request_id_from_header_and_context(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    """The request id is in the log context while the app runs, and cleared after."""
    seen: dict = {}

    async def app(scope, receive, send):
        seen.update(get_log_context())
        telemetry.emitter.info("inside handler")
        await status_app(200)(scope, receive, send)

    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(app, telemetry)
    await middleware(
        asgi_scope(headers=[(b"x-request-id", b"req-123")]), asgi_receive, send
    )

    assert seen == {"request_id": "req-123"}
    assert [r.fields["request_id"] for r in sink.records] == ["req-123", "req-123"]
    assert get_log_context() == {}


@pytest.mark.asyncio
async def test_custom_request_id_header(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(
        status_app(200), telemetry, request_id_header="X-Correlation-ID"
    )
    await middleware(
        asgi_scope(headers=[(b"X-Correlation-ID", b"corr-9")]), asgi_receive, send
    )
    assert sink.records[0].fields["request_id"] == "corr-9"


@pytest.mark.asyncio
async def test_generates_request_id_when_missing(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(status_app(200), telemetry)
    await middleware(asgi_scope(), asgi_receive, send)
    await middleware(asgi_scope(), asgi_receive, send)
    first, second = (r.fields["request_id"] for r in sink.records)
    assert len(first) == 36
    assert first != second


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/health", "/internal/debug"])
async def test_excluded_paths_are_not_recorded(
    telemetry: Telemetry,
    sink: InMemoryLogSink,
    asgi_scope,
    asgi_receive,
    asgi_send_capture,
    path: str,
) -> None:
    send, responses = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(
        status_app(200), telemetry, exclude_paths=["/health", "/internal/*"]
    )
    await middleware(asgi_scope(path=path), asgi_receive, send)
    assert sink.records == []
    assert telemetry.registry.get(REQUESTS_METRIC) is None
    assert responses[0]["status"] == 200


@pytest.mark.asyncio
async def test_non_http_scopes_pass_through(telemetry: Telemetry, sink: InMemoryLogSink) -> None:
    called: list[str] = []

    async def app(scope, receive, send):
        called.append(scope["type"])

    middleware = ASGIObservabilityMiddleware(app, telemetry)
    await middleware({"type": "lifespan"}, None, None)
    assert called == ["lifespan"]
    assert sink.records == []


@pytest.mark.asyncio
async def test_defaults_to_process_runtime(
    config, sink: InMemoryLogSink, asgi_scope, asgi_receive, asgi_send_capture
) -> None:
    runtime = init_telemetry(config, sink=sink)
    send, _ = asgi_send_capture
    middleware = ASGIObservabilityMiddleware(status_app(201))
    await middleware(asgi_scope(), asgi_receive, send)
    assert middleware.telemetry is runtime
    assert _counter_value(runtime, method="GET", path="/test", status="201") == 1.0


@pytest.mark.asyncio
async def test_end_to_end_through_httpx(
    telemetry: Telemetry, sink: InMemoryLogSink, asgi_test_client
) -> None:
    app = ASGIObservabilityMiddleware(status_app(200), telemetry)
    async with asgi_test_client(app) as client:
        response = await client.get("/widgets", headers={"X-Request-ID": "abc"})
    assert response.status_code == 200
    assert response.text == "hello"
    record = sink.records[0]
    assert record.fields["request_id"] == "abc"
    series = {
        s.labels: s.value for s in telemetry.registry.snapshot() if s.name == REQUESTS_METRIC
    }
    assert series == {LabelSet.of(method="GET", path="/widgets", status="200"): 1.0}
