"""
Sliding-window rate limiter for outbound calls.

One instance is shared by every request in the process (the registry quota is
global), so the admission decision is serialized with an asyncio.Lock. Waiting
happens outside the lock so a sleeping caller never holds it.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_s: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._sleep = sleep
        self._granted: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._granted and now - self._granted[0] >= self.window_s:
            self._granted.popleft()

    async def acquire(self) -> None:
        """
        Wait until one more grant fits in the trailing window, then record it.
        """
        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._granted) < self.max_requests:
                    self._granted.append(now)
                    return None
                wait_s = self.window_s - (now - self._granted[0])
            await self._sleep(max(wait_s, 0.001))

    @property
    def in_window(self) -> int:
        """
        Grants currently counted against the window (after pruning).
        """
        self._prune(self._clock())
        return len(self._granted)
