import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..repositories.job_queue_repository import JobQueueRepository
from ..repositories.strategy_repository import StrategyRepository
from ..services.notifier import Notifier


@dataclass
class HealthReport:
    healthy: bool
    store_ok: bool
    queue: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None


class HealthCheckUseCase:
    """
    Store + queue reachability and queue depth. Failures become an
    operator alert, never a job failure.
    """

    def __init__(
        self,
        strategy_repo: StrategyRepository,
        job_queue: JobQueueRepository,
        notifier: Notifier,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._strategies = strategy_repo
        self._queue = job_queue
        self._notifier = notifier
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock

    async def run(self) -> HealthReport:
        store_ok = False
        try:
            store_ok = await self._strategies.ping()
            if not store_ok:
                return await self._unhealthy(store_ok, "strategy store did not answer ping")
            counts = await self._queue.counts(int(self._clock() * 1000))
        except Exception as exc:
            return await self._unhealthy(store_ok, f"{exc.__class__.__name__}: {exc}")

        self._logger.info(
            "Health OK: queue pending=%s delayed=%s active=%s failed=%s",
            counts.get("pending"), counts.get("delayed"), counts.get("active"), counts.get("failed"),
        )
        return HealthReport(healthy=True, store_ok=True, queue=counts)

    async def _unhealthy(self, store_ok: bool, error: str) -> HealthReport:
        self._logger.error("Health check failed: %s", error)
        await self._notifier.system_alert(f"Health check failed: {error}")
        return HealthReport(healthy=False, store_ok=store_ok, error=error)
