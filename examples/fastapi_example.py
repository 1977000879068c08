"""Example FastAPI application instrumented with telemetrykit.

Run with:
    uvicorn examples.fastapi_example:app --reload

Endpoints:
    /                     - Hello endpoint
    /orders/{order_id}    - Logs with sensitive fields that get redacted
    /import               - A loop whose repeated records are coalesced
    /error                - Raises; logged at ERROR and counted as status 500
    /telemetry/metrics    - NDJSON registry snapshot
    /telemetry/logs       - NDJSON buffered records (?since=<ts>&level=<level>)

Every request is counted in ``http.requests_total`` and timed in
``http.request_duration_seconds`` by the ASGI middleware. Process gauges
are sampled every five seconds when psutil is installed.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from telemetrykit import (
    RingBufferLogSink,
    TelemetryConfig,
    get_logger,
    histogram,
    init_telemetry,
)
from telemetrykit.adapters.collectors.process import ProcessCollector
from telemetrykit.adapters.frameworks import (
    ASGIObservabilityMiddleware,
    create_asgi_app,
)
from telemetrykit.core.background import PeriodicWorker

log_sink = RingBufferLogSink(max_size=1000)
telemetry = init_telemetry(
    TelemetryConfig(service_name="orders-api", minimum_level="DEBUG"),
    sink=log_sink,
)
logger = get_logger(__name__)
collector = ProcessCollector(telemetry.registry)
collector_worker = PeriodicWorker(5.0, collector.collect, "process-collector")
import_batch = histogram("orders.import_batch_size", buckets=[1, 10, 100, 1000])


@asynccontextmanager
async def lifespan(app: FastAPI):
    telemetry.start_background()
    collector_worker.start()
    yield
    collector_worker.stop()
    telemetry.stop_background()
    telemetry.flush()


app = FastAPI(title="telemetrykit example", lifespan=lifespan)
app.add_middleware(
    ASGIObservabilityMiddleware,
    telemetry=telemetry,
    exclude_paths=["/telemetry/*"],
)
app.mount("/telemetry", create_asgi_app(telemetry, log_sink))


@app.get("/")
async def root() -> dict[str, str]:
    logger.info("hello requested")
    return {"message": "Hello! Check /telemetry/metrics and /telemetry/logs."}


@app.get("/orders/{order_id}")
async def get_order(order_id: str) -> dict[str, str]:
    # card_number and api_token are masked by the default redaction rules
    logger.info(
        "order {order_id} viewed",
        {"order_id": order_id, "card_number": "4111111111111111", "api_token": "t0k3n"},
    )
    return {"order_id": order_id}


@app.get("/import")
async def import_orders(count: int = 50) -> dict[str, int]:
    with logger.batch():
        for row in range(count):
            logger.debug("importing row", {"row": row})
            await asyncio.sleep(0)
    import_batch.observe(count)
    return {"imported": count}


@app.get("/error")
async def error_endpoint() -> dict[str, str]:
    raise ValueError("Intentional error for demonstration")
