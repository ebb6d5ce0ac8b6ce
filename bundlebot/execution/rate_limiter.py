"""Sliding-window rate limiter shared by every bundle submission path."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bundlebot.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitWindow:
    """Snapshot of the current window."""

    count: int
    window_start: float | None
    max_per_window: int


class SlidingWindowRateLimiter:
    """Allows at most ``max_per_window`` passes in any rolling window.

    ``wait()`` never drops or fails a caller, it only suspends it until the
    window has capacity. Waiters are served one at a time through an
    asyncio.Lock so concurrent submitters cannot overshoot the window.
    """

    def __init__(
        self,
        max_per_window: int,
        window_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_per_window < 1:
            msg = f"max_per_window must be >= 1, got {max_per_window}"
            raise ValueError(msg)
        if window_seconds <= 0:
            msg = f"window_seconds must be > 0, got {window_seconds}"
            raise ValueError(msg)
        self._max_per_window = max_per_window
        self._window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._passes: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def window(self) -> RateLimitWindow:
        self._prune(self._clock())
        return RateLimitWindow(
            count=len(self._passes),
            window_start=self._passes[0] if self._passes else None,
            max_per_window=self._max_per_window,
        )

    async def wait(self) -> None:
        """Wait until the window has capacity, then take it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._passes) < self._max_per_window:
                    self._passes.append(now)
                    return
                wait_time = self._passes[0] + self._window_seconds - now
                logger.debug("rate_limiter.waiting", wait_s=round(wait_time, 4))
                await self._sleep(wait_time)

    def _prune(self, now: float) -> None:
        while self._passes and now - self._passes[0] >= self._window_seconds:
            self._passes.popleft()
