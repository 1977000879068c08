"""Daemon thread that runs a callable on a fixed interval."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """Calls ``func`` every ``interval`` seconds on a daemon thread.

    Exceptions raised by ``func`` are logged and the loop keeps running.

    Args:
        interval: Seconds between calls.
        func: Zero-argument callable.
        name: Thread name.
    """

    def __init__(self, interval: float, func: Callable[[], None], name: str) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self._func = func
        self._name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._func()
            except Exception:
                logger.exception("periodic task %s failed", self._name)
