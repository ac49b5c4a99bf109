from decimal import Decimal

import pytest

from rebalancer.core.domain.entities.strategy_entity import TokenAllocation
from rebalancer.core.domain.enums.rebalance_enums import ExecutionState, MevMode, RebalanceStatus
from rebalancer.core.domain.exceptions import (
    ConfigurationError,
    GasTooHighError,
    NoAcceptableQuoteError,
    RpcError,
    SimulationRevertedError,
    TransactionRevertedError,
)
from rebalancer.core.services.gas_oracle_service import GasOracleService
from rebalancer.core.services.gas_price_cache import GasPriceCache
from rebalancer.core.services.mev_protection_service import MevProtectionService
from rebalancer.core.services.quote_aggregator_service import QuoteAggregatorService
from rebalancer.core.services.rebalance_call_builder import REBALANCE_SELECTOR, RebalanceCallBuilder
from rebalancer.core.domain.entities.job_entity import RebalanceJob
from rebalancer.core.usecases.execute_rebalance_use_case import ExecuteRebalanceUseCase, failed_tx_placeholder

from fakes import (
    BOT,
    CHAIN_ID,
    DELEGATOR,
    E18,
    GWEI,
    TOKEN_A,
    TOKEN_B,
    InMemoryDelegationRepository,
    InMemoryGasPriceRepository,
    InMemoryStrategyRepository,
    RecordingNotifier,
    StaticQuoteAdapter,
    failing_adapter,
    make_chain,
    make_delegation,
    make_strategy,
)


def _job(**kw):
    data = dict(id="job-1", strategy_id="strat-1", user_address="0xuser", chain_id=CHAIN_ID, drift_bps=2000, attempts=1)
    data.update(kw)
    return RebalanceJob(**data)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def build_executor(engine, chain_clients, rebalance_repo, notifier, clock):
    def factory(strategies=None, delegations=None, adapters=None, max_gas_price_wei=100 * GWEI, chain=None):
        chain = chain or make_chain()
        strategies = strategies if strategies is not None else [make_strategy()]
        delegations = delegations if delegations is not None else [make_delegation()]
        adapters = adapters if adapters is not None else [
            StaticQuoteAdapter("alpha", ratio=Decimal("0.99")),
            StaticQuoteAdapter("beta", ratio=Decimal("0.995")),
        ]
        chains = {chain.chain_id: chain}
        gas_oracle = GasOracleService(
            chains=chains,
            chain_clients=chain_clients,
            cache=GasPriceCache(ttl_sec=0),
            gas_repo=InMemoryGasPriceRepository(),
            multiplier=1.0,
        )
        return ExecuteRebalanceUseCase(
            chains=chains,
            strategy_repo=InMemoryStrategyRepository(strategies),
            delegation_repo=InMemoryDelegationRepository(delegations),
            rebalance_repo=rebalance_repo,
            engine=engine,
            gas_oracle=gas_oracle,
            aggregator=QuoteAggregatorService(adapters),
            call_builder=RebalanceCallBuilder(),
            mev=MevProtectionService(intent_repo=None, max_delay_ms=0),
            chain_clients=chain_clients,
            notifier=notifier,
            max_gas_price_wei=max_gas_price_wei,
            clock=clock,
        )
    return factory


def test_failed_tx_placeholder_format():
    placeholder = failed_tx_placeholder(1234)
    prefix, ms, rand = placeholder.split("-")
    assert (prefix, ms) == ("failed", "1234")
    assert len(rand) == 8
    int(rand, 16)


async def test_successful_rebalance(build_executor, chain_client, rebalance_repo, notifier):
    executor = build_executor()

    result = await executor.execute(_job())

    assert result.state == ExecutionState.CONFIRMED
    assert result.tx_hash == chain_client.tx_hash
    assert result.swaps_executed == 1
    assert result.drift_bps == 2000

    (tx,) = chain_client.sent
    assert tx.data.startswith("0x" + REBALANCE_SELECTOR.hex())
    assert tx.from_address == BOT
    assert tx.gas_price == 10 * GWEI
    assert tx.value == 0
    assert tx.mev_mode == MevMode.RANDOM_DELAY.value
    # the simulated call is the one that was sent
    assert chain_client.simulated[0].data == tx.data

    (record,) = rebalance_repo.records
    assert record.status == RebalanceStatus.SUCCESS
    assert record.tx_hash == chain_client.tx_hash
    assert record.job_id == "job-1"
    assert record.drift_bps == 2000
    # fake chain did not move the balances
    assert record.drift_after_bps == 2000
    assert record.gas_used == 210_000
    assert record.gas_cost == 210_000 * 10 * GWEI
    assert record.executed_by == BOT
    assert record.id == result.record_id

    assert notifier.completed == [("strat-1", True, chain_client.tx_hash, None)]


async def test_balanced_portfolio_is_skipped_without_record(build_executor, chain_client, rebalance_repo):
    chain_client.balances[(TOKEN_A, DELEGATOR)] = 50 * E18
    chain_client.balances[(TOKEN_B, DELEGATOR)] = 50 * E18

    result = await build_executor().execute(_job())

    assert result.state == ExecutionState.SKIPPED
    assert rebalance_repo.records == []
    assert chain_client.sent == []


async def test_invalid_strategy_is_skipped_without_record(build_executor, rebalance_repo, notifier):
    broken = make_strategy(tokens=[TokenAllocation(address=TOKEN_A, weight_bps=9000)])
    result = await build_executor(strategies=[broken]).execute(_job())

    assert result.state == ExecutionState.SKIPPED
    assert rebalance_repo.records == []
    assert notifier.completed == []


async def test_missing_strategy_records_failure_and_reraises(build_executor, rebalance_repo, notifier):
    with pytest.raises(ConfigurationError, match="Strategy strat-1 not found"):
        await build_executor(strategies=[]).execute(_job())

    (record,) = rebalance_repo.records
    assert record.status == RebalanceStatus.FAILED
    assert record.tx_hash.startswith("failed-")
    assert record.error_message == "Strategy strat-1 not found"
    assert notifier.completed[0][1] is False


async def test_missing_delegation_is_a_configuration_error(build_executor, rebalance_repo, chain_client):
    with pytest.raises(ConfigurationError, match="No active delegation"):
        await build_executor(delegations=[]).execute(_job())
    assert rebalance_repo.records[0].status == RebalanceStatus.FAILED
    assert chain_client.sent == []


async def test_gas_above_ceiling_fails_before_quoting(build_executor, chain_client, rebalance_repo):
    chain_client.gas_price = 200 * GWEI
    adapter = StaticQuoteAdapter("alpha")

    with pytest.raises(GasTooHighError):
        await build_executor(adapters=[adapter], chain=make_chain(venues=["alpha"])).execute(_job())

    assert adapter.requests == []
    assert chain_client.sent == []
    assert "Gas too high" in rebalance_repo.records[0].error_message


async def test_no_acceptable_quote_records_failure(build_executor, chain_client, rebalance_repo):
    executor = build_executor(adapters=[failing_adapter("alpha"), failing_adapter("beta")])

    with pytest.raises(NoAcceptableQuoteError):
        await executor.execute(_job())

    assert chain_client.sent == []
    assert rebalance_repo.records[0].status == RebalanceStatus.FAILED


async def test_quotes_above_impact_ceiling_record_failure(build_executor, chain_client, rebalance_repo):
    adapters = [StaticQuoteAdapter("alpha", impact=10.0), StaticQuoteAdapter("beta", impact=10.0)]

    with pytest.raises(NoAcceptableQuoteError, match="price impact"):
        await build_executor(adapters=adapters).execute(_job())

    assert all(a.requests for a in adapters)
    assert chain_client.sent == []
    (record,) = rebalance_repo.records
    assert record.status == RebalanceStatus.FAILED
    assert record.tx_hash.startswith("failed-")


async def test_simulation_revert_is_never_broadcast(build_executor, chain_client, rebalance_repo, notifier):
    chain_client.simulate_error = SimulationRevertedError("MinOutputNotMet")

    with pytest.raises(SimulationRevertedError):
        await build_executor().execute(_job())

    assert chain_client.sent == []
    (record,) = rebalance_repo.records
    assert record.tx_hash.startswith("failed-")
    assert "MinOutputNotMet" in record.error_message
    assert notifier.completed[0][3] == "Simulation reverted: MinOutputNotMet"


async def test_onchain_revert_keeps_real_tx_hash(build_executor, chain_client, rebalance_repo):
    chain_client.receipt_error = TransactionRevertedError(chain_client.tx_hash, None, "Transaction reverted (status=0)")

    with pytest.raises(TransactionRevertedError):
        await build_executor().execute(_job())

    assert len(chain_client.sent) == 1
    (record,) = rebalance_repo.records
    assert record.status == RebalanceStatus.FAILED
    assert record.tx_hash == chain_client.tx_hash


async def test_receipt_timeout_keeps_broadcast_hash(build_executor, chain_client, rebalance_repo):
    chain_client.receipt_error = RpcError("receipt timeout")

    with pytest.raises(RpcError):
        await build_executor().execute(_job())

    assert rebalance_repo.records[0].tx_hash == chain_client.tx_hash


async def test_each_failed_attempt_writes_its_own_record(build_executor, chain_client, rebalance_repo):
    chain_client.simulate_error = SimulationRevertedError("x")
    executor = build_executor()
    for attempt in (1, 2):
        with pytest.raises(SimulationRevertedError):
            await executor.execute(_job(attempts=attempt))
    assert [r.attempt for r in rebalance_repo.records] == [1, 2]
