"""In-memory log sinks."""

import threading
from collections import deque
from collections.abc import Iterable

from telemetrykit.core.models import Level, LogRecord


def _filtered(
    records: Iterable[LogRecord], since: float, level: Level | str | None
) -> list[LogRecord]:
    minimum = Level.parse(level) if level is not None else None
    selected = [
        r
        for r in records
        if r.timestamp > since and (minimum is None or r.level >= minimum)
    ]
    return sorted(selected, key=lambda r: r.timestamp)


class InMemoryLogSink:
    """In-memory implementation of LogSinkPort.

    Keeps every record in a list. Suitable for testing and
    low-volume applications where persistence is not required.
    """

    def __init__(self) -> None:
        self._records: list[LogRecord] = []
        self._lock = threading.Lock()

    def write(self, record: LogRecord) -> None:
        """Append a record."""
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[LogRecord]:
        with self._lock:
            return list(self._records)

    def read(
        self, since: float = 0, level: Level | str | None = None
    ) -> list[LogRecord]:
        """Read records since the given timestamp.

        Args:
            since: Returns records with timestamp > since.
            level: Optional minimum level.

        Returns:
            Records ordered by timestamp ascending.
        """
        return _filtered(self.records, since, level)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class RingBufferLogSink:
    """Ring buffer implementation of LogSinkPort.

    Stores records in a fixed-size circular buffer. When the buffer
    is full, the oldest record is evicted to make room for new ones.
    Useful for keeping a recent-history window with predictable memory use.

    Args:
        max_size: Maximum number of records to keep.
    """

    def __init__(self, max_size: int) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._buffer: deque[LogRecord] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def write(self, record: LogRecord) -> None:
        with self._lock:
            self._buffer.append(record)

    @property
    def records(self) -> list[LogRecord]:
        with self._lock:
            return list(self._buffer)

    def read(
        self, since: float = 0, level: Level | str | None = None
    ) -> list[LogRecord]:
        """Read buffered records since the given timestamp, oldest first."""
        return _filtered(self.records, since, level)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)
