import logging
import time
from typing import Optional, Tuple

from ..domain.entities.strategy_entity import StrategyEntity
from ..domain.evaluation import ConditionResult, DriftCheck, ExecutionPlan, ParsedStrategy, PortfolioState
from ..repositories.rebalance_repository import RebalanceRepository
from .action_planner_service import ActionPlannerService
from .condition_evaluator_service import ConditionEvaluatorService
from .portfolio_analyzer_service import PortfolioAnalyzerService
from .strategy_parser_service import StrategyParserService


class StrategyEngine:
    """
    Runs the evaluation pipeline, always in this order:

        parse -> analyze portfolio -> evaluate conditions -> plan

    needs_rebalancing() stops after the conditions (scheduler, read-only);
    evaluate_strategy() runs the full pipeline (executor).
    ParseError propagates to the caller, who decides to skip the strategy.
    """

    def __init__(
        self,
        parser: StrategyParserService,
        analyzer: PortfolioAnalyzerService,
        evaluator: ConditionEvaluatorService,
        planner: ActionPlannerService,
        rebalance_repo: RebalanceRepository,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._parser = parser
        self._analyzer = analyzer
        self._evaluator = evaluator
        self._planner = planner
        self._rebalances = rebalance_repo
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock

    async def last_rebalanced_at(self, strategy: StrategyEntity) -> int:
        """
        Timestamp (ms) of the newest rebalance record of any status,
        else the strategy creation time.
        """
        latest = await self._rebalances.latest_for_strategy(strategy.id)
        if latest is not None:
            return latest.created_at
        return strategy.created_at

    def rebalance_interval_sec(self, strategy: StrategyEntity) -> int:
        """
        Effective interval between rebalances: the action's own interval when
        it sets one, else the strategy's. Raises ParseError for invalid strategies.
        """
        return self._parser.parse(strategy).interval_sec

    async def _run_until_conditions(
        self, strategy: StrategyEntity
    ) -> Tuple[ParsedStrategy, PortfolioState, ConditionResult]:
        parsed = self._parser.parse(strategy)
        portfolio = await self._analyzer.analyze(parsed)
        now_ms = int(self._clock() * 1000)
        latest = await self._rebalances.latest_for_strategy(strategy.id)
        last = latest.created_at if latest is not None else None
        conditions = self._evaluator.evaluate(parsed, portfolio, now_ms, last)
        return parsed, portfolio, conditions

    async def needs_rebalancing(self, strategy: StrategyEntity) -> DriftCheck:
        _, _, conditions = await self._run_until_conditions(strategy)
        return DriftCheck(
            needs_rebalancing=conditions.met,
            drift_bps=conditions.drift_bps,
            threshold_bps=conditions.threshold_bps,
            reason=conditions.reason,
        )

    async def evaluate_strategy(self, strategy: StrategyEntity) -> ExecutionPlan:
        parsed, portfolio, conditions = await self._run_until_conditions(strategy)
        plan = self._planner.plan(parsed, portfolio, conditions)
        self._logger.info(
            "Strategy %s evaluated: should_execute=%s swaps=%s (%s)",
            strategy.id, plan.should_execute, len(plan.swaps), plan.reason,
        )
        return plan

    async def current_drift(self, strategy: StrategyEntity) -> int:
        """
        Drift only (parse + analyze), used to measure the result of a rebalance.
        """
        parsed = self._parser.parse(strategy)
        portfolio = await self._analyzer.analyze(parsed)
        return portfolio.drift_bps
