"""Framework adapters."""

from telemetrykit.adapters.frameworks.asgi import (
    ASGIObservabilityMiddleware,
    create_asgi_app,
)

__all__ = ["ASGIObservabilityMiddleware", "create_asgi_app"]
