"""Coalescing of repeated emissions from tight loops.

Each key, typically ``(call site, message)``, owns a window. The first
``threshold`` calls in a window go through. Later calls are suppressed and
counted. When the burst ends, either on an explicit batch end or once the
window has elapsed, a single summary carrying the suppressed count is
produced.

Window states:
    IDLE          no activity in the current window
    BURSTING      calls admitted so far are within the threshold
    SUMMARIZING   threshold exceeded, a summary is pending
"""

import threading
import time
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from enum import Enum


class WindowState(Enum):
    IDLE = "idle"
    BURSTING = "bursting"
    SUMMARIZING = "summarizing"


@dataclass(frozen=True)
class BurstSummary:
    """Result of closing a window that suppressed calls.

    Attributes:
        key: The guarded key.
        suppressed: Number of calls suppressed in the window.
        first_seen: Guard-clock time the window opened.
        last_seen: Guard-clock time of the last suppressed call.
    """

    key: Hashable
    suppressed: int
    first_seen: float
    last_seen: float

    @property
    def duration(self) -> float:
        return self.last_seen - self.first_seen


@dataclass(frozen=True)
class Admission:
    """Outcome of ``LoopGuard.admit``.

    Attributes:
        allowed: Whether the caller should emit.
        summary: Summary of a previous window that this call closed, if any.
    """

    allowed: bool
    summary: BurstSummary | None = None


class _SiteWindow:
    __slots__ = ("state", "first_seen", "count", "suppressed", "last_seen", "lock")

    def __init__(self) -> None:
        self.state = WindowState.IDLE
        self.first_seen = 0.0
        self.count = 0
        self.suppressed = 0
        self.last_seen = 0.0
        self.lock = threading.Lock()

    def close(self, key: Hashable) -> BurstSummary | None:
        summary = None
        if self.state is WindowState.SUMMARIZING and self.suppressed:
            summary = BurstSummary(key, self.suppressed, self.first_seen, self.last_seen)
        self.state = WindowState.IDLE
        self.count = 0
        self.suppressed = 0
        return summary

    def open(self, now: float) -> None:
        self.state = WindowState.BURSTING
        self.first_seen = now
        self.count = 1
        self.suppressed = 0
        self.last_seen = now


class LoopGuard:
    """Per-key rate limiter that coalesces bursts into summaries.

    At most ``max_keys`` keys are tracked. Creating one more evicts the
    oldest windows, preferring those with nothing suppressed; an evicted
    window that did suppress calls is closed and its summary is returned by
    the next ``sweep`` or full ``end_batch``.

    Args:
        threshold: Calls admitted per window before suppression starts.
        window: Window length in seconds of the guard clock.
        clock: Monotonic time source.
        max_keys: Maximum number of tracked keys.
    """

    def __init__(
        self,
        threshold: int = 3,
        window: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 1024,
    ) -> None:
        if threshold < 1:
            raise ValueError("loop guard threshold must be >= 1")
        if window <= 0:
            raise ValueError("loop guard window must be > 0")
        if max_keys < 1:
            raise ValueError("loop guard max_keys must be >= 1")
        self.threshold = threshold
        self.window = window
        self.max_keys = max_keys
        self.clock = clock
        self._windows: dict[Hashable, _SiteWindow] = {}
        self._evicted: list[BurstSummary] = []
        self._create_lock = threading.Lock()

    def _window_for(self, key: Hashable) -> _SiteWindow:
        site = self._windows.get(key)
        if site is None:
            with self._create_lock:
                site = self._windows.get(key)
                if site is None:
                    if len(self._windows) >= self.max_keys:
                        self._evict(len(self._windows) - self.max_keys + 1)
                    site = self._windows[key] = _SiteWindow()
        return site

    def _evict(self, excess: int) -> None:
        # Caller holds _create_lock. Oldest first; pending summaries last.
        for include_pending in (False, True):
            for key, site in list(self._windows.items()):
                if excess <= 0:
                    return
                with site.lock:
                    if site.state is WindowState.SUMMARIZING and not include_pending:
                        continue
                    summary = site.close(key)
                if summary is not None:
                    self._evicted.append(summary)
                del self._windows[key]
                excess -= 1

    def _take_evicted(self) -> list[BurstSummary]:
        with self._create_lock:
            evicted, self._evicted = self._evicted, []
        return evicted

    def state(self, key: Hashable) -> WindowState:
        site = self._windows.get(key)
        return site.state if site is not None else WindowState.IDLE

    def admit(self, key: Hashable) -> Admission:
        """Register one call for ``key`` and decide whether it may emit.

        A call that arrives after the window elapsed closes the old window
        (returning its summary, if anything was suppressed) and opens a new
        one in which it is admitted.
        """
        now = self.clock()
        site = self._window_for(key)
        with site.lock:
            summary = None
            if site.state is not WindowState.IDLE and now - site.first_seen >= self.window:
                summary = site.close(key)
            if site.state is WindowState.IDLE:
                site.open(now)
                return Admission(True, summary)
            site.count += 1
            if site.count <= self.threshold:
                return Admission(True, summary)
            site.state = WindowState.SUMMARIZING
            site.suppressed += 1
            site.last_seen = now
            return Admission(False, summary)

    def end_batch(self, keys: Iterable[Hashable] | None = None) -> list[BurstSummary]:
        """Close windows on an explicit batch end.

        Args:
            keys: Keys whose burst ended; all keys when None.

        Returns:
            Summaries for closed windows that suppressed calls.
        """
        summaries = self._take_evicted() if keys is None else []
        targets = list(self._windows) if keys is None else list(keys)
        for key in targets:
            site = self._windows.get(key)
            if site is None:
                continue
            with site.lock:
                summary = site.close(key)
            if summary is not None:
                summaries.append(summary)
        return summaries

    def sweep(self) -> list[BurstSummary]:
        """Close every window whose time elapsed and forget idle keys."""
        now = self.clock()
        summaries = self._take_evicted()
        for key, site in list(self._windows.items()):
            with site.lock:
                if site.state is not WindowState.IDLE and now - site.first_seen >= self.window:
                    summary = site.close(key)
                    if summary is not None:
                        summaries.append(summary)
        with self._create_lock:
            for key, site in list(self._windows.items()):
                with site.lock:
                    if site.state is WindowState.IDLE:
                        del self._windows[key]
        return summaries

    def __len__(self) -> int:
        return len(self._windows)
