"""
Fixed-window rate limiter for public write endpoints.

Process-wide state with an explicit lifecycle: the store starts empty,
every mutation happens under an asyncio.Lock, and expired windows are
purged by a periodic sweep task started from the app lifespan. For
multi-instance deployments swap the backing dict for a shared store.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable
import asyncio
import contextlib
import logging
import time

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Request count for one identifier inside one window."""
    count: int
    reset_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_at


@dataclass
class RateLimitInfo:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """In-memory fixed-window limiter keyed by caller identifier."""

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    async def hit(self, identifier: str) -> RateLimitInfo:
        """Count one request. ``allowed`` is False once the window is full."""
        async with self._lock:
            now = self._clock()
            window = self._windows.get(identifier)
            if window is None or window.is_expired(now):
                window = RateWindow(count=1, reset_at=now + self.window_seconds)
                self._windows[identifier] = window
                return RateLimitInfo(True, self.max_requests - 1, window.reset_at)

            if window.count >= self.max_requests:
                return RateLimitInfo(False, 0, window.reset_at)

            window.count += 1
            return RateLimitInfo(
                True, self.max_requests - window.count, window.reset_at
            )

    async def info(self, identifier: str) -> RateLimitInfo | None:
        async with self._lock:
            window = self._windows.get(identifier)
            if window is None:
                return None
            remaining = max(0, self.max_requests - window.count)
            return RateLimitInfo(remaining > 0, remaining, window.reset_at)

    async def sweep(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, w in self._windows.items() if w.is_expired(now)]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug("Rate limiter swept %d expired windows", len(expired))
        return len(expired)

    async def reset(self) -> None:
        async with self._lock:
            self._windows.clear()

    @property
    def tracked(self) -> int:
        return len(self._windows)

    # -- Lifecycle --

    def start(self, interval_seconds: float = 60.0) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_forever(interval_seconds))

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.sweep()
