"""Port interfaces for the collaborators the core hands data to.

The core depends only on these protocols. Sinks receive finished log
records; exporters receive registry snapshots and own any wire format.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from telemetrykit.core.models import LogRecord, SeriesSnapshot


@runtime_checkable
class LogSinkPort(Protocol):
    """Port for log record delivery.

    Adapters implementing this protocol receive every emitted record.
    Examples: InMemoryLogSink, StreamLogSink, QueuedLogSink.
    """

    def write(self, record: LogRecord) -> None:
        """Deliver one record. May raise; the emitter counts and drops."""
        ...


@runtime_checkable
class MetricsExporterPort(Protocol):
    """Port for metric export.

    Adapters implementing this protocol serialize snapshots into whatever
    format their backend expects and are called off the observation path.
    """

    def export(self, snapshot: Sequence[SeriesSnapshot]) -> None:
        """Export one registry snapshot."""
        ...
