"""Process resource gauges sampled with psutil.

Requires the ``process`` extra (``pip install telemetrykit[process]``).
"""

import psutil

from telemetrykit.core.registry import SeriesRegistry


class ProcessCollector:
    """Samples CPU, memory, thread and file descriptor usage of a process.

    Call ``collect()`` on whatever schedule suits the application, for
    example from the function a ``PeriodicWorker`` runs before export.

    Args:
        registry: Registry the gauges are registered on.
        pid: Process to sample; defaults to the current one.
    """

    def __init__(self, registry: SeriesRegistry, pid: int | None = None) -> None:
        self._process = psutil.Process(pid)
        self.cpu_percent = registry.gauge(
            "process.cpu_percent", description="CPU usage since the previous sample"
        )
        self.resident_memory = registry.gauge(
            "process.resident_memory_bytes", description="Resident set size"
        )
        self.threads = registry.gauge("process.threads", description="OS threads")
        self.open_fds = registry.gauge(
            "process.open_fds", description="Open file descriptors (POSIX only)"
        )
        # primes cpu_percent so the first collect() reports a real interval
        self._process.cpu_percent(interval=None)

    def collect(self) -> None:
        """Take one sample and set every gauge."""
        with self._process.oneshot():
            self.cpu_percent.set(self._process.cpu_percent(interval=None))
            self.resident_memory.set(self._process.memory_info().rss)
            self.threads.set(self._process.num_threads())
            num_fds = getattr(self._process, "num_fds", None)
            if num_fds is not None:
                self.open_fds.set(num_fds())
