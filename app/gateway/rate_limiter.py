"""Fixed-window request limiter keyed by client identity.

Each client key owns one window ``{count, window_start}``:

  - no window, or the window is older than ``window`` seconds → reset it to
    ``count=1, window_start=now`` and admit
  - ``count < limit`` → increment and admit
  - otherwise → reject

The window restarts at the request that triggers the reset, not on a fixed
boundary, so a client timing requests around the boundary can get up to
``2 * limit`` requests through in just under ``2 * window`` seconds.

A background task evicts stale windows every ``sweep_interval`` seconds.
Eviction only bounds memory; admission never depends on sweep timing.

Check-and-increment runs under a ``threading.Lock`` with no await inside,
so it is atomic across asyncio tasks and OS threads alike.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.gateway.types import RateDecision

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Counter state for a single client key."""

    key: str
    count: int
    window_start: float  # clock() value of the request that opened the window

    def age(self, now: float) -> float:
        return now - self.window_start


class RateWindowStore:
    """Process-wide fixed-window counters.

    Usage:
        store = RateWindowStore(limit=5, window=60.0)
        store.start()  # background sweep, inside a running loop

        if store.check_and_increment(client_ip) == RateDecision.REJECTED:
            ...

        await store.stop()
    """

    def __init__(
        self,
        limit: int = 5,
        window: float = 60.0,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")

        self.limit = limit
        self.window = window
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings) -> RateWindowStore:
        return cls(
            limit=settings.rate_limit_count,
            window=settings.rate_limit_window_ms / 1000.0,
            sweep_interval=settings.rate_limit_sweep_interval_ms / 1000.0,
        )

    def check_and_increment(self, key: str) -> RateDecision:
        """Admit or reject one request for ``key``, counting it if admitted."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)

            if window is None or window.age(now) > self.window:
                self._windows[key] = RateWindow(key=key, count=1, window_start=now)
                return RateDecision.ALLOWED

            if window.count < self.limit:
                window.count += 1
                return RateDecision.ALLOWED

            return RateDecision.REJECTED

    def sweep(self) -> int:
        """Drop every window older than the window length. Returns the number dropped."""
        with self._lock:
            now = self._clock()
            stale = [key for key, w in self._windows.items() if w.age(now) > self.window]
            for key in stale:
                del self._windows[key]

        if stale:
            logger.debug("Rate limiter swept %d stale windows", len(stale))
        return len(stale)

    def get_window(self, key: str) -> RateWindow | None:
        """Snapshot of the window for ``key`` (a copy, safe to inspect)."""
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return None
            return RateWindow(key=window.key, count=window.count, window_start=window.window_start)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop(), name="rate-window-sweep")
        logger.info(
            "Rate limiter sweep started (limit=%d, window=%.0fs, interval=%.0fs)",
            self.limit,
            self.window,
            self.sweep_interval,
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Rate limiter sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Rate limiter sweep failed")

    def get_stats(self) -> dict:
        return {
            "tracked_keys": len(self),
            "limit": self.limit,
            "window_seconds": self.window,
            "sweep_running": self.running,
        }
