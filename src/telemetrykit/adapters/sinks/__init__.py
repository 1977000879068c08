"""Log sink adapters implementing LogSinkPort."""

from telemetrykit.adapters.sinks.in_memory import InMemoryLogSink, RingBufferLogSink
from telemetrykit.adapters.sinks.queued import QueuedLogSink
from telemetrykit.adapters.sinks.stdlib import StdlibLoggingSink
from telemetrykit.adapters.sinks.stream import StreamLogSink

__all__ = [
    "InMemoryLogSink",
    "QueuedLogSink",
    "RingBufferLogSink",
    "StdlibLoggingSink",
    "StreamLogSink",
]
