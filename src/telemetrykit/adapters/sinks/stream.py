"""Stream sink writing one NDJSON line per record."""

import sys
import threading
from typing import TextIO

from telemetrykit.core.encoding.ndjson import encode_record
from telemetrykit.core.models import LogRecord


class StreamLogSink:
    """Writes records as NDJSON lines to a text stream.

    Args:
        stream: Target stream; defaults to ``sys.stderr`` resolved at write
            time so test harnesses that swap stderr are honored.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def write(self, record: LogRecord) -> None:
        line = encode_record(record) + "\n"
        with self._lock:
            self.stream.write(line)

    def flush(self) -> None:
        with self._lock:
            self.stream.flush()
