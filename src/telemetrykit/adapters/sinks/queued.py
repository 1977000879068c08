"""Non-blocking sink that decouples callers from a slow inner sink."""

import logging
import threading
import time
from collections import deque
from typing import Literal

from telemetrykit.core.models import LogRecord
from telemetrykit.core.ports import LogSinkPort

logger = logging.getLogger(__name__)

OverflowPolicy = Literal["drop_oldest", "drop_new"]


class QueuedLogSink:
    """Buffers records and writes them to ``inner`` on a daemon thread.

    ``write`` never blocks on the inner sink. When the buffer is full the
    policy decides what is lost: ``"drop_oldest"`` evicts the oldest
    buffered record, ``"drop_new"`` discards the incoming one. Either way
    ``dropped`` is incremented. Inner sink exceptions are counted in
    ``failures`` and the record is dropped.

    Args:
        inner: The sink that may block.
        max_size: Buffer capacity in records.
        policy: Overflow policy.
    """

    def __init__(
        self,
        inner: LogSinkPort,
        max_size: int = 10_000,
        policy: OverflowPolicy = "drop_oldest",
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if policy not in ("drop_oldest", "drop_new"):
            raise ValueError(f"unknown overflow policy {policy!r}")
        self.inner = inner
        self.max_size = max_size
        self.policy = policy
        self.dropped = 0
        self.failures = 0
        self._buffer: deque[LogRecord] = deque()
        self._in_flight = 0
        self._closed = False
        self._cond = threading.Condition()
        self._thread = threading.Thread(
            target=self._drain, name="telemetrykit-queued-sink", daemon=True
        )
        self._thread.start()

    def write(self, record: LogRecord) -> None:
        with self._cond:
            if self._closed:
                self.dropped += 1
                return
            if len(self._buffer) >= self.max_size:
                self.dropped += 1
                if self.policy == "drop_new":
                    return
                self._buffer.popleft()
            self._buffer.append(record)
            self._cond.notify()

    def pending(self) -> int:
        with self._cond:
            return len(self._buffer) + self._in_flight

    def _drain(self) -> None:
        while True:
            with self._cond:
                while not self._buffer and not self._closed:
                    self._cond.wait()
                if not self._buffer:
                    return
                batch = list(self._buffer)
                self._buffer.clear()
                self._in_flight = len(batch)
            failed = 0
            for record in batch:
                try:
                    self.inner.write(record)
                except Exception:
                    failed += 1
                    logger.debug("inner sink %r failed", self.inner, exc_info=True)
            with self._cond:
                self.failures += failed
                self._in_flight = 0
                self._cond.notify_all()

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Wait until everything buffered so far has been written.

        Returns:
            True if the buffer drained before the timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._buffer or self._in_flight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop accepting records, drain the buffer and stop the worker."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._thread.join(timeout)
