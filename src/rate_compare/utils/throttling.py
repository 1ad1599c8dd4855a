"""Request pacing for channel transports."""
from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque

_MINUTE = 60.0
_BURST_WINDOW = 1.0


class RateLimiter:
    """Sliding-window limiter: ``requests_per_minute`` overall, ``burst_limit`` per second."""

    def __init__(
        self,
        requests_per_minute: int = 30,
        burst_limit: int = 5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute <= 0 or burst_limit <= 0:
            raise ValueError("requests_per_minute and burst_limit must be positive")
        self.requests_per_minute = requests_per_minute
        self.burst_limit = burst_limit
        self._clock = clock
        self._sleep = sleep
        self._history: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._history and self._history[0] <= now - _MINUTE:
            self._history.popleft()

    def delay_needed(self) -> float:
        """Seconds to wait before the next request may be sent (0 when allowed now)."""
        now = self._clock()
        self._prune(now)
        if len(self._history) >= self.requests_per_minute:
            return max(0.0, self._history[0] + _MINUTE - now)
        recent = [stamp for stamp in self._history if stamp > now - _BURST_WINDOW]
        if len(recent) >= self.burst_limit:
            return max(0.0, recent[0] + _BURST_WINDOW - now)
        return 0.0

    async def acquire(self) -> None:
        while True:
            delay = self.delay_needed()
            if delay <= 0:
                self._history.append(self._clock())
                return
            await self._sleep(delay)

    @property
    def requests_in_window(self) -> int:
        self._prune(self._clock())
        return len(self._history)
