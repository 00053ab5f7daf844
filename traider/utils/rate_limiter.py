"""Minimum-interval rate limiter for outbound API calls."""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class MinIntervalLimiter:
    """Enforces a minimum delay between consecutive calls.

    Callers suspend (via the injected sleep) until the interval since the
    previous call has elapsed. Waiters are serialized so two concurrent
    callers can never both see an idle limiter.
    """

    def __init__(
        self,
        min_interval_sec: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval_sec = min_interval_sec
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call: float | None = None
        self.call_count = 0

    @classmethod
    def per_minute(cls, requests_per_minute: int, **kwargs) -> MinIntervalLimiter:
        return cls(60.0 / requests_per_minute, **kwargs)

    async def wait(self) -> float:
        """Wait if needed, then record the call. Returns seconds waited."""
        async with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_call is not None:
                since = now - self._last_call
                if since < self.min_interval_sec:
                    waited = self.min_interval_sec - since
                    await self._sleep(waited)
                    now = self._clock()
            self._last_call = now
            self.call_count += 1
            return waited
