import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..domain.entities.job_entity import RebalanceJob
from ..domain.entities.strategy_entity import StrategyEntity
from ..domain.enums.rebalance_enums import JobPriority
from ..domain.exceptions import ValidationError
from ..repositories.delegation_repository import DelegationRepository
from ..repositories.job_queue_repository import JobQueueRepository
from ..repositories.strategy_repository import StrategyRepository
from ..services.notifier import Notifier
from ..services.strategy_engine_service import StrategyEngine


@dataclass
class TickReport:
    skipped_reentrant: bool = False
    checked: int = 0
    enqueued: int = 0
    skipped: int = 0
    errors: int = 0


def priority_for_drift(drift_bps: int) -> int:
    """
    Higher drift -> lower number -> claimed first.
    """
    if drift_bps > 1000:
        return JobPriority.HIGH.value
    if drift_bps > 500:
        return JobPriority.MEDIUM.value
    return JobPriority.LOW.value


class MonitorStrategiesUseCase:
    """
    One scheduler tick: find strategies that are due, ask the engine for a
    drift check and enqueue a rebalance job for the ones that need it.

    Single-flight: a tick started while another is running returns
    immediately with skipped_reentrant=True.
    """

    def __init__(
        self,
        strategy_repo: StrategyRepository,
        delegation_repo: DelegationRepository,
        job_queue: JobQueueRepository,
        engine: StrategyEngine,
        notifier: Notifier,
        max_attempts: int = 3,
        backoff_base_sec: float = 2.0,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._strategies = strategy_repo
        self._delegations = delegation_repo
        self._queue = job_queue
        self._engine = engine
        self._notifier = notifier
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_sec
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def tick(self, now_ms: Optional[int] = None) -> TickReport:
        if self._running:
            self._logger.debug("Previous monitoring tick still running, skipping")
            return TickReport(skipped_reentrant=True)

        self._running = True
        try:
            return await self._tick(now_ms if now_ms is not None else int(self._clock() * 1000))
        finally:
            self._running = False

    async def _tick(self, now_ms: int) -> TickReport:
        report = TickReport()
        strategies = await self._strategies.list_monitorable()
        self._logger.debug("Checking %s strategies", len(strategies))

        for strategy in strategies:
            report.checked += 1
            try:
                if await self._check_strategy(strategy, now_ms):
                    report.enqueued += 1
                else:
                    report.skipped += 1
            except ValidationError as exc:
                report.skipped += 1
                self._logger.warning("Strategy %s skipped: %s", strategy.id, exc)
            except Exception as exc:
                report.errors += 1
                self._logger.exception("Error checking strategy %s: %s", strategy.id, exc)

        if report.enqueued:
            self._logger.info(
                "Tick done: checked=%s enqueued=%s errors=%s", report.checked, report.enqueued, report.errors
            )
        return report

    async def _check_strategy(self, strategy: StrategyEntity, now_ms: int) -> bool:
        delegation = await self._delegations.get_active(strategy.id, now_ms)
        if delegation is None:
            self._logger.debug("Strategy %s has no active delegation, skipping", strategy.id)
            return False

        last = await self._engine.last_rebalanced_at(strategy)
        if now_ms - last < self._engine.rebalance_interval_sec(strategy) * 1000:
            self._logger.debug("Strategy %s not due yet", strategy.id)
            return False

        if await self._queue.has_open_job(strategy.id):
            self._logger.debug("Strategy %s already has a queued job", strategy.id)
            return False

        check = await self._engine.needs_rebalancing(strategy)
        if not check.needs_rebalancing:
            self._logger.debug(
                "Strategy %s within bounds: drift=%sbps threshold=%sbps (%s)",
                strategy.id, check.drift_bps, check.threshold_bps, check.reason,
            )
            return False

        job = await self._queue.enqueue(
            RebalanceJob(
                strategy_id=strategy.id,
                user_address=strategy.user_address,
                chain_id=strategy.chain_id,
                drift_bps=check.drift_bps,
                priority=priority_for_drift(check.drift_bps),
                max_attempts=self._max_attempts,
                backoff_base_sec=self._backoff_base,
            )
        )
        self._logger.info(
            "Rebalance job %s enqueued for strategy %s: drift=%.2f%% priority=%s",
            job.id, strategy.id, check.drift_bps / 100, job.priority,
        )
        await self._notifier.rebalance_started(strategy.id, check.drift_bps)
        return True
