import asyncio
import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from ..adapters.external.chain.chain_client import ChainClientRegistry
from ..adapters.external.database.delegation_repository_mongodb import DelegationRepositoryMongoDB
from ..adapters.external.database.gas_price_repository_mongodb import GasPriceRepositoryMongoDB
from ..adapters.external.database.intent_repository_mongodb import IntentRepositoryMongoDB
from ..adapters.external.database.job_queue_repository_mongodb import JobQueueRepositoryMongoDB
from ..adapters.external.database.rebalance_repository_mongodb import RebalanceRepositoryMongoDB
from ..adapters.external.database.strategy_repository_mongodb import StrategyRepositoryMongoDB
from ..adapters.external.notifications.telegram_notifier import TelegramNotifier
from ..adapters.external.prices.pyth_price_client import PythPriceClient
from ..adapters.external.venues.registry import build_adapters
from ..config import Settings, get_settings
from ..core.services.action_planner_service import ActionPlannerService
from ..core.services.condition_evaluator_service import ConditionEvaluatorService
from ..core.services.gas_oracle_service import GasOracleService
from ..core.services.gas_price_cache import GasPriceCache
from ..core.services.mev_protection_service import MevProtectionService
from ..core.services.portfolio_analyzer_service import PortfolioAnalyzerService
from ..core.services.quote_aggregator_service import QuoteAggregatorService
from ..core.services.rebalance_call_builder import RebalanceCallBuilder
from ..core.services.strategy_engine_service import StrategyEngine
from ..core.services.strategy_parser_service import StrategyParserService
from ..core.usecases.execute_rebalance_use_case import ExecuteRebalanceUseCase
from ..core.usecases.health_check_use_case import HealthCheckUseCase
from ..core.usecases.monitor_strategies_use_case import MonitorStrategiesUseCase
from ..core.usecases.process_rebalance_job_use_case import ProcessRebalanceJobUseCase
from .periodic_task import PeriodicTask
from .queue_worker import RebalanceQueueWorker


class RebalanceSupervisor:
    """
    High-level supervisor for the rebalancer process.

    Responsibilities:
    - Connect to Mongo, ensure indexes.
    - Wire repositories, chain clients, venues, services and use cases.
    - Start the background loops:
        scheduler tick, health check, gas sampler, N queue workers.
    - On stop: let queue workers finish their in-flight job, then close Mongo.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings
        self._logger = logging.getLogger(self.__class__.__name__)
        self._mongo_client: Optional[AsyncIOMotorClient] = None
        self._db = None
        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

        self.strategy_repo: Optional[StrategyRepositoryMongoDB] = None
        self.rebalance_repo: Optional[RebalanceRepositoryMongoDB] = None
        self.job_queue: Optional[JobQueueRepositoryMongoDB] = None
        self.gas_oracle: Optional[GasOracleService] = None
        self.aggregator: Optional[QuoteAggregatorService] = None
        self.engine: Optional[StrategyEngine] = None
        self.monitor_uc: Optional[MonitorStrategiesUseCase] = None
        self.health_uc: Optional[HealthCheckUseCase] = None

    @property
    def db(self):
        """Expose the AsyncIOMotorDatabase instance after start()."""
        return self._db

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    async def start(self):
        """
        Create connections, ensure indexes, wire everything and spawn the loops.
        """
        s = self.settings

        # Mongo
        self._mongo_client = AsyncIOMotorClient(s.mongodb_uri)
        self._db = self._mongo_client[s.mongodb_db_name]

        self.strategy_repo = StrategyRepositoryMongoDB(self._db)
        delegation_repo = DelegationRepositoryMongoDB(self._db)
        self.rebalance_repo = RebalanceRepositoryMongoDB(self._db)
        gas_repo = GasPriceRepositoryMongoDB(self._db)
        intent_repo = IntentRepositoryMongoDB(self._db)
        self.job_queue = JobQueueRepositoryMongoDB(self._db)

        for repo in (self.strategy_repo, delegation_repo, self.rebalance_repo, gas_repo, intent_repo, self.job_queue):
            await repo.ensure_indexes()

        # Chain access
        chains_by_id = {cfg.chain_id: cfg for cfg in s.chains.values()}
        chain_clients = ChainClientRegistry.from_settings(s)
        if not s.private_key:
            self._logger.warning("PRIVATE_KEY not set: monitoring only, every execution attempt will fail")

        notifier = TelegramNotifier(token=s.telegram_bot_token, chat_id=s.telegram_chat_id)

        # Strategy engine: parse -> analyze -> conditions -> plan
        prices = PythPriceClient(
            chains_by_id,
            chain_clients,
            stable_tokens=s.stable_token_addresses,
            max_age_sec=s.price_max_age_sec,
        )
        self.engine = StrategyEngine(
            parser=StrategyParserService(
                default_drift_threshold_bps=s.default_drift_threshold_bps,
                weight_tolerance_bps=s.weight_tolerance_bps,
            ),
            analyzer=PortfolioAnalyzerService(chain_clients, prices),
            evaluator=ConditionEvaluatorService(),
            planner=ActionPlannerService(min_trade_usd=s.min_trade_usd),
            rebalance_repo=self.rebalance_repo,
        )

        # Gas / quotes / MEV
        self.gas_oracle = GasOracleService(
            chains=chains_by_id,
            chain_clients=chain_clients,
            cache=GasPriceCache(ttl_sec=s.gas_cache_ttl_sec),
            gas_repo=gas_repo,
            multiplier=s.gas_price_multiplier,
            stats_window_hours=s.gas_stats_window_hours,
        )
        self.aggregator = QuoteAggregatorService(
            build_adapters(s, chain_clients),
            max_price_impact_pct=s.max_price_impact_pct,
            slippage_bps=s.max_slippage_bps,
        )
        mev = MevProtectionService(
            intent_repo,
            enable_private_relay=s.enable_private_relay,
            enable_intents=s.enable_intents,
            max_delay_ms=s.mev_max_delay_ms,
            intent_ttl_sec=s.intent_ttl_sec,
        )

        # Use cases
        executor_uc = ExecuteRebalanceUseCase(
            chains=chains_by_id,
            strategy_repo=self.strategy_repo,
            delegation_repo=delegation_repo,
            rebalance_repo=self.rebalance_repo,
            engine=self.engine,
            gas_oracle=self.gas_oracle,
            aggregator=self.aggregator,
            call_builder=RebalanceCallBuilder(),
            mev=mev,
            chain_clients=chain_clients,
            notifier=notifier,
            max_gas_price_wei=s.max_gas_price_wei,
        )
        process_uc = ProcessRebalanceJobUseCase(self.job_queue, executor_uc, lease_sec=s.queue_lease_sec)
        self.monitor_uc = MonitorStrategiesUseCase(
            strategy_repo=self.strategy_repo,
            delegation_repo=delegation_repo,
            job_queue=self.job_queue,
            engine=self.engine,
            notifier=notifier,
            max_attempts=s.queue_max_attempts,
            backoff_base_sec=s.queue_backoff_base_sec,
        )
        self.health_uc = HealthCheckUseCase(self.strategy_repo, self.job_queue, notifier)

        # Background loops
        self._stop_event.clear()
        periodic = [
            PeriodicTask("monitor", s.monitoring_interval_sec, self.monitor_uc.tick, self._stop_event),
            PeriodicTask("health", s.health_check_interval_sec, self.health_uc.run, self._stop_event),
            PeriodicTask("gas-sampler", s.gas_sample_interval_sec, self.gas_oracle.sample_once, self._stop_event),
        ]
        workers = [
            RebalanceQueueWorker(f"worker-{i}", process_uc, notifier, self._stop_event)
            for i in range(max(1, s.queue_concurrency))
        ]
        for loop in [*periodic, *workers]:
            self._tasks.append(asyncio.create_task(loop.run(), name=loop.name))

        self._logger.info(
            "Rebalancer started: chains=%s workers=%s monitor every %ss",
            ",".join(s.chains.keys()), len(workers), s.monitoring_interval_sec,
        )

    async def stop(self):
        """
        Gracefully stop: signal loops, wait for in-flight jobs, close Mongo.
        """
        self._stop_event.set()
        if self._tasks:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for task, res in zip(self._tasks, results):
                if isinstance(res, Exception):
                    self._logger.error("task %s ended with error: %s", task.get_name(), res)
            self._tasks = []

        if self._mongo_client:
            self._mongo_client.close()
            self._mongo_client = None
        self._logger.info("Rebalancer stopped")
