import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..domain.entities.job_entity import RebalanceJob
from ..domain.enums.rebalance_enums import JobOutcome
from ..repositories.job_queue_repository import JobQueueRepository
from .execute_rebalance_use_case import ExecuteRebalanceUseCase, ExecutionResult


@dataclass
class JobResult:
    outcome: JobOutcome
    job: Optional[RebalanceJob] = None
    execution: Optional[ExecutionResult] = None
    error: Optional[str] = None
    next_run_at: Optional[int] = None


def backoff_delay_sec(base_sec: float, attempt: int) -> float:
    """
    Exponential: base, 2*base, 4*base ... for attempt 1, 2, 3 ...
    """
    return base_sec * (2 ** max(0, attempt - 1))


class ProcessRebalanceJobUseCase:
    """
    Claims one job, runs the executor and applies the retry policy.
    The outcome is returned to the calling worker instead of firing callbacks.
    """

    def __init__(
        self,
        job_queue: JobQueueRepository,
        executor: ExecuteRebalanceUseCase,
        lease_sec: int = 300,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._queue = job_queue
        self._executor = executor
        self._lease_ms = int(lease_sec * 1000)
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock

    async def run_once(self) -> JobResult:
        job = await self._queue.claim_next(int(self._clock() * 1000), self._lease_ms)
        if job is None:
            return JobResult(outcome=JobOutcome.IDLE)

        try:
            execution = await self._executor.execute(job)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            if job.attempts >= job.max_attempts:
                await self._queue.mark_failed(job, error)
                self._logger.error(
                    "Job %s for strategy %s failed after %s attempts: %s",
                    job.id, job.strategy_id, job.attempts, error,
                )
                return JobResult(outcome=JobOutcome.EXHAUSTED, job=job, error=error)

            delay = backoff_delay_sec(job.backoff_base_sec, job.attempts)
            run_at = int(self._clock() * 1000) + int(delay * 1000)
            await self._queue.reschedule(job, run_at, error)
            self._logger.warning(
                "Job %s attempt %s/%s failed, retrying in %.1fs: %s",
                job.id, job.attempts, job.max_attempts, delay, error,
            )
            return JobResult(outcome=JobOutcome.RETRY_SCHEDULED, job=job, error=error, next_run_at=run_at)

        await self._queue.mark_completed(job)
        return JobResult(outcome=JobOutcome.COMPLETED, job=job, execution=execution)
