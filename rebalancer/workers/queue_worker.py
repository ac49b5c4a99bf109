import asyncio
import logging
from typing import Optional

from ..core.domain.enums.rebalance_enums import JobOutcome
from ..core.services.notifier import Notifier
from ..core.usecases.process_rebalance_job_use_case import JobResult, ProcessRebalanceJobUseCase


class RebalanceQueueWorker:
    """
    One queue consumer. Pulls jobs back to back while there is work,
    sleeps idle_sleep_sec when the queue is empty.

    Stop is only checked between jobs: an in-flight job always finishes.
    Exhausted jobs raise an operator alert.
    """

    def __init__(
        self,
        name: str,
        process_uc: ProcessRebalanceJobUseCase,
        notifier: Notifier,
        stop_event: asyncio.Event,
        idle_sleep_sec: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = name
        self._process = process_uc
        self._notifier = notifier
        self._stop = stop_event
        self._idle_sleep = idle_sleep_sec
        self._logger = logger or logging.getLogger(f"{self.__class__.__name__}[{name}]")

    async def run(self) -> None:
        self._logger.info("queue worker %s started", self.name)
        while not self._stop.is_set():
            try:
                result = await self._process.run_once()
            except Exception as exc:
                self._logger.exception("queue worker %s error: %s", self.name, exc)
                await self._idle()
                continue

            await self._handle(result)
            if result.outcome == JobOutcome.IDLE:
                await self._idle()
        self._logger.info("queue worker %s drained and stopped", self.name)

    async def _handle(self, result: JobResult) -> None:
        if result.outcome == JobOutcome.EXHAUSTED and result.job is not None:
            await self._notifier.system_alert(
                f"Rebalance job {result.job.id} for strategy {result.job.strategy_id} "
                f"failed after {result.job.attempts} attempts: {result.error}"
            )

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._idle_sleep)
        except asyncio.TimeoutError:
            pass
