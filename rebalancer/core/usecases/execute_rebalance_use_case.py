import logging
import secrets
import time
from dataclasses import dataclass, replace
from typing import Dict, Optional

from ...config import ChainConfig
from ..domain.entities.job_entity import RebalanceJob
from ..domain.entities.rebalance_entity import RebalanceRecord
from ..domain.entities.strategy_entity import StrategyEntity
from ..domain.enums.rebalance_enums import ExecutionState, RebalanceStatus
from ..domain.exceptions import ConfigurationError, GasTooHighError, ValidationError
from ..domain.swap import TxOutcome
from ..repositories.delegation_repository import DelegationRepository
from ..repositories.rebalance_repository import RebalanceRepository
from ..repositories.strategy_repository import StrategyRepository
from ..services.gas_oracle_service import GasOracleService
from ..services.mev_protection_service import MevProtectionService
from ..services.notifier import Notifier
from ..services.quote_aggregator_service import QuoteAggregatorService
from ..services.rebalance_call_builder import RebalanceCallBuilder
from ..services.strategy_engine_service import StrategyEngine


@dataclass
class ExecutionResult:
    state: ExecutionState
    strategy_id: str
    reason: str = ""
    tx_hash: Optional[str] = None
    swaps_executed: int = 0
    drift_bps: int = 0
    drift_after_bps: Optional[int] = None
    record_id: Optional[str] = None


def failed_tx_placeholder(now_ms: int) -> str:
    return f"failed-{now_ms}-{secrets.token_hex(4)}"


class ExecuteRebalanceUseCase:
    """
    One attempt at rebalancing one strategy:

        LOADED -> EVALUATED -> GAS_CHECKED -> QUOTED -> BUILT
               -> SIMULATED -> SUBMITTED -> CONFIRMED | FAILED

    - should_execute=False or a malformed strategy -> SKIPPED, nothing recorded.
    - Any other failure writes a FAILED record, notifies the user and re-raises
      so the queue can apply its retry policy.
    - Success writes a SUCCESS record and notifies.
    """

    def __init__(
        self,
        chains: Dict[int, ChainConfig],
        strategy_repo: StrategyRepository,
        delegation_repo: DelegationRepository,
        rebalance_repo: RebalanceRepository,
        engine: StrategyEngine,
        gas_oracle: GasOracleService,
        aggregator: QuoteAggregatorService,
        call_builder: RebalanceCallBuilder,
        mev: MevProtectionService,
        chain_clients,
        notifier: Notifier,
        max_gas_price_wei: int,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._chains = chains
        self._strategies = strategy_repo
        self._delegations = delegation_repo
        self._rebalances = rebalance_repo
        self._engine = engine
        self._gas = gas_oracle
        self._aggregator = aggregator
        self._builder = call_builder
        self._mev = mev
        self._clients = chain_clients
        self._notifier = notifier
        self._max_gas = max_gas_price_wei
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _chain(self, chain_id: int) -> ChainConfig:
        chain = self._chains.get(int(chain_id))
        if chain is None:
            raise ConfigurationError(f"no chain configured for chain_id={chain_id}")
        return chain

    async def execute(self, job: RebalanceJob) -> ExecutionResult:
        state = ExecutionState.LOADED
        drift = job.drift_bps
        tx_hash: Optional[str] = None
        executor_address: Optional[str] = None

        self._logger.info(
            "Processing rebalance job %s for strategy %s (attempt %s/%s)",
            job.id, job.strategy_id, job.attempts, job.max_attempts,
        )

        try:
            strategy = await self._strategies.get_by_id(job.strategy_id)
            if strategy is None:
                raise ConfigurationError(f"Strategy {job.strategy_id} not found")
            chain = self._chain(strategy.chain_id)
            client = self._clients.get(chain.chain_id)
            executor_address = client.sender_address()

            delegation = await self._delegations.get_active(strategy.id, self._now_ms())
            if delegation is None:
                raise ConfigurationError(f"No active delegation found for strategy {strategy.id}")

            plan = await self._engine.evaluate_strategy(strategy)
            state = ExecutionState.EVALUATED
            if not plan.should_execute:
                self._logger.info("Strategy %s does not need rebalancing: %s", strategy.id, plan.reason)
                return ExecutionResult(
                    state=ExecutionState.SKIPPED,
                    strategy_id=strategy.id,
                    reason=plan.reason,
                    drift_bps=plan.drift_bps,
                )
            drift = plan.drift_bps

            gas_price = await self._gas.get_optimal_gas_price(chain)
            if gas_price > self._max_gas:
                raise GasTooHighError(gas_price, self._max_gas)
            state = ExecutionState.GAS_CHECKED

            swaps = await self._aggregator.get_optimal_swaps(plan, chain, strategy.delegator_address)
            state = ExecutionState.QUOTED

            tx = self._builder.build(strategy, delegation, swaps, chain)
            tx = replace(tx, from_address=executor_address, gas_price=gas_price)
            state = ExecutionState.BUILT

            await client.simulate(tx)
            state = ExecutionState.SIMULATED

            tx = await self._mev.protect(tx, chain, strategy_id=strategy.id, user_address=strategy.user_address)
            tx_hash = await client.send_transaction(tx)
            state = ExecutionState.SUBMITTED

            outcome = await client.wait_for_receipt(tx_hash)
            state = ExecutionState.CONFIRMED

        except ValidationError as exc:
            self._logger.warning("Strategy %s skipped, invalid definition: %s", job.strategy_id, exc)
            return ExecutionResult(state=ExecutionState.SKIPPED, strategy_id=job.strategy_id, reason=str(exc))

        except Exception as exc:
            self._logger.error(
                "Rebalance failed for strategy %s at state %s: %s", job.strategy_id, state.value, exc
            )
            await self._record_failure(job, drift, exc, tx_hash, executor_address)
            raise

        return await self._record_success(job, strategy, drift, len(swaps), outcome, gas_price, executor_address)

    async def _record_success(
        self,
        job: RebalanceJob,
        strategy: StrategyEntity,
        drift: int,
        swaps_executed: int,
        outcome: TxOutcome,
        gas_price: int,
        executor_address: Optional[str],
    ) -> ExecutionResult:
        drift_after = await self._drift_after(strategy, drift)
        effective_price = outcome.effective_gas_price or gas_price
        record = RebalanceRecord(
            strategy_id=strategy.id,
            chain_id=strategy.chain_id,
            user_address=strategy.user_address,
            job_id=job.id,
            attempt=job.attempts,
            status=RebalanceStatus.SUCCESS,
            tx_hash=outcome.tx_hash,
            drift_bps=drift,
            drift_after_bps=drift_after,
            swaps_executed=swaps_executed,
            gas_used=outcome.gas_used,
            gas_price=effective_price,
            gas_cost=outcome.gas_used * effective_price,
            executed_by=executor_address,
            created_at=self._now_ms(),
        )
        await self._rebalances.insert(record)
        self._logger.info(
            "Rebalance confirmed for strategy %s: tx=%s swaps=%s drift %sbps -> %sbps",
            strategy.id, outcome.tx_hash, swaps_executed, drift, drift_after,
        )
        await self._notifier.rebalance_completed(strategy.id, True, tx_hash=outcome.tx_hash)
        return ExecutionResult(
            state=ExecutionState.CONFIRMED,
            strategy_id=strategy.id,
            reason="confirmed",
            tx_hash=outcome.tx_hash,
            swaps_executed=swaps_executed,
            drift_bps=drift,
            drift_after_bps=drift_after,
            record_id=record.id,
        )

    async def _drift_after(self, strategy: StrategyEntity, fallback: int) -> int:
        try:
            return await self._engine.current_drift(strategy)
        except Exception as exc:
            self._logger.warning("Could not measure drift after rebalance of %s: %s", strategy.id, exc)
            return fallback

    async def _record_failure(
        self,
        job: RebalanceJob,
        drift: int,
        error: Exception,
        tx_hash: Optional[str],
        executor_address: Optional[str],
    ) -> None:
        now_ms = self._now_ms()
        # a broadcast tx keeps its real hash (revert or receipt timeout)
        recorded_hash = getattr(error, "tx_hash", None) or tx_hash or failed_tx_placeholder(now_ms)
        message = str(error) or error.__class__.__name__
        record = RebalanceRecord(
            strategy_id=job.strategy_id,
            chain_id=job.chain_id,
            user_address=job.user_address,
            job_id=job.id,
            attempt=job.attempts,
            status=RebalanceStatus.FAILED,
            tx_hash=recorded_hash,
            drift_bps=drift,
            error_message=message,
            executed_by=executor_address,
            created_at=now_ms,
        )
        try:
            await self._rebalances.insert(record)
        except Exception as exc:
            self._logger.exception("Could not persist FAILED record for strategy %s: %s", job.strategy_id, exc)
        await self._notifier.rebalance_completed(job.strategy_id, False, error=message)
