"""Shared test fixtures for all test modules."""

from collections.abc import Iterator

import pytest

from telemetrykit.adapters.sinks.in_memory import InMemoryLogSink
from telemetrykit.core.config import TelemetryConfig
from telemetrykit.core.context import clear_log_context
from telemetrykit.core.registry import SeriesRegistry
from telemetrykit.runtime import Telemetry, reset_telemetry

try:
    import httpx
except ImportError:
    httpx = None


class FakeClock:
    """Manually advanced clock for loop guard and timestamp tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_runtime() -> Iterator[None]:
    """Every test starts without a process-wide runtime or log context."""
    reset_telemetry()
    clear_log_context()
    yield
    reset_telemetry()
    clear_log_context()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> InMemoryLogSink:
    """Provide an empty in-memory log sink."""
    return InMemoryLogSink()


@pytest.fixture
def config() -> TelemetryConfig:
    """Deterministic config: fixed identity, small ceiling."""
    return TelemetryConfig(
        service_name="test-service",
        instance_id="test-1",
        cardinality_ceiling=10,
    )


@pytest.fixture
def registry(config: TelemetryConfig) -> SeriesRegistry:
    return SeriesRegistry(config)


@pytest.fixture
def telemetry(config: TelemetryConfig, sink: InMemoryLogSink) -> Telemetry:
    """A runtime writing to the in-memory sink, not installed globally."""
    return Telemetry(config, sink)


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from telemetrykit.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: list[tuple[bytes, bytes]] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": headers or [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    async def receive() -> dict[str, object]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return receive


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
