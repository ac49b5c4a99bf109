import asyncio
import time
from typing import Optional


class RateLimiter:
    """
    Minimum delay between two requests to the same venue.

    Callers queue on the lock and sleep out the remaining gap instead of
    failing. One instance per venue, injected into its adapter.
    """

    def __init__(self, min_interval_sec: float, clock=time.monotonic, sleep=asyncio.sleep):
        self._min_interval = max(0.0, float(min_interval_sec))
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

    @property
    def min_interval_sec(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        if self._min_interval <= 0:
            return
        async with self._lock:
            if self._last_request is not None:
                wait = self._last_request + self._min_interval - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_request = self._clock()
