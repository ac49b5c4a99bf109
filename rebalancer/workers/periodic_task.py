import asyncio
import logging
from typing import Awaitable, Callable, Optional


class PeriodicTask:
    """
    Runs `fn` every `interval_sec` until `stop_event` is set.

    Errors are logged and the loop keeps going. The wait between runs is
    interruptible, so stop() does not have to sit out a full interval.
    """

    def __init__(
        self,
        name: str,
        interval_sec: float,
        fn: Callable[[], Awaitable[object]],
        stop_event: asyncio.Event,
        run_immediately: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = name
        self._interval = max(0.0, float(interval_sec))
        self._fn = fn
        self._stop = stop_event
        self._run_immediately = run_immediately
        self._logger = logger or logging.getLogger(f"{self.__class__.__name__}[{name}]")

    async def run(self) -> None:
        self._logger.info("%s started (every %ss)", self.name, self._interval)
        if not self._run_immediately and await self._wait():
            return
        while not self._stop.is_set():
            try:
                await self._fn()
            except Exception as exc:
                self._logger.exception("%s loop error: %s", self.name, exc)
            if await self._wait():
                break
        self._logger.info("%s stopped", self.name)

    async def _wait(self) -> bool:
        """
        Sleep one interval; True when stop was requested meanwhile.
        """
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            return True
        except asyncio.TimeoutError:
            return False
