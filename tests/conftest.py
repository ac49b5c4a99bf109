from decimal import Decimal

import pytest

from rebalancer.core.services.action_planner_service import ActionPlannerService
from rebalancer.core.services.condition_evaluator_service import ConditionEvaluatorService
from rebalancer.core.services.portfolio_analyzer_service import PortfolioAnalyzerService
from rebalancer.core.services.strategy_engine_service import StrategyEngine
from rebalancer.core.services.strategy_parser_service import StrategyParserService

from fakes import (
    CHAIN_ID,
    DELEGATOR,
    E18,
    TOKEN_A,
    TOKEN_B,
    FakeChainClient,
    FakeChainRegistry,
    FakePriceOracle,
    InMemoryRebalanceRepository,
)


class FixedClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def chain_client():
    # 70 / 30 by value at $1 each
    return FakeChainClient(balances={(TOKEN_A, DELEGATOR): 70 * E18, (TOKEN_B, DELEGATOR): 30 * E18})


@pytest.fixture
def chain_clients(chain_client):
    return FakeChainRegistry({CHAIN_ID: chain_client})


@pytest.fixture
def price_oracle():
    return FakePriceOracle({TOKEN_A: Decimal(1), TOKEN_B: Decimal(1)})


@pytest.fixture
def rebalance_repo():
    return InMemoryRebalanceRepository()


@pytest.fixture
def engine(chain_clients, price_oracle, rebalance_repo, clock):
    return StrategyEngine(
        parser=StrategyParserService(),
        analyzer=PortfolioAnalyzerService(chain_clients, price_oracle),
        evaluator=ConditionEvaluatorService(),
        planner=ActionPlannerService(min_trade_usd=1.0),
        rebalance_repo=rebalance_repo,
        clock=clock,
    )
