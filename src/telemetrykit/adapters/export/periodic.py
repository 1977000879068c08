"""Periodic snapshot export, isolated from the observation path.

A timer thread takes registry snapshots and puts them on a bounded queue.
A separate worker thread hands them to the exporter. A slow or failing
exporter therefore only delays or drops snapshots; ``observe`` never
waits on it.
"""

import logging
import queue
import threading
from collections.abc import Sequence

from telemetrykit.core.background import PeriodicWorker
from telemetrykit.core.models import SeriesSnapshot
from telemetrykit.core.ports import MetricsExporterPort
from telemetrykit.core.registry import SeriesRegistry

logger = logging.getLogger(__name__)

_STOP = object()


class PeriodicExporter:
    """Exports registry snapshots on an interval.

    Args:
        registry: Registry to snapshot.
        exporter: Collaborator implementing ``MetricsExporterPort``.
        interval: Seconds between snapshots.
        max_pending: Snapshots that may wait for the exporter; the oldest
            is dropped when a new one arrives on a full queue.
    """

    def __init__(
        self,
        registry: SeriesRegistry,
        exporter: MetricsExporterPort,
        interval: float = 15.0,
        max_pending: int = 4,
    ) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self.registry = registry
        self.exporter = exporter
        self.dropped = 0
        self.failures = 0
        self.exported = 0
        self._queue: queue.Queue[Sequence[SeriesSnapshot] | object] = queue.Queue(
            maxsize=max_pending
        )
        self._drop_lock = threading.Lock()
        self._timer = PeriodicWorker(interval, self.export_now, "telemetrykit-export-timer")
        self._worker: threading.Thread | None = None

    def export_now(self) -> None:
        """Snapshot the registry and queue it for export without waiting."""
        self._offer(self.registry.snapshot())

    def _offer(self, item: Sequence[SeriesSnapshot] | object) -> None:
        with self._drop_lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self.exporter.export(item)  # type: ignore[arg-type]
                self.exported += 1
            except Exception:
                self.failures += 1
                logger.exception("metrics exporter %r failed", self.exporter)

    def start(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(
                target=self._run, name="telemetrykit-exporter", daemon=True
            )
            self._worker.start()
        self._timer.start()

    def stop(self, timeout: float | None = 5.0, final_export: bool = True) -> None:
        """Stop the timer, optionally export once more, and stop the worker."""
        self._timer.stop(timeout)
        if final_export:
            self.export_now()
        if self._worker is not None:
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("metrics exporter %r did not drain before stop", self.exporter)
            self._worker.join(timeout)
            self._worker = None
