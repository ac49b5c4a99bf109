import logging
from decimal import Decimal
from typing import List, Optional

from ..domain.enums.strategy_enums import ConditionOperator, ConditionType
from ..domain.evaluation import ConditionResult, ParsedCondition, ParsedStrategy, PortfolioState


def _compare(left: Decimal, op: ConditionOperator, right: Decimal) -> bool:
    if op == ConditionOperator.GT:
        return left > right
    if op == ConditionOperator.GTE:
        return left >= right
    if op == ConditionOperator.LT:
        return left < right
    return left <= right


class ConditionEvaluatorService:
    """
    Stage 3: drift >= threshold AND every declared condition holds.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def evaluate(
        self,
        parsed: ParsedStrategy,
        portfolio: PortfolioState,
        now_ms: int,
        last_rebalanced_at_ms: Optional[int] = None,
    ) -> ConditionResult:
        threshold = parsed.drift_threshold_bps
        drift = portfolio.drift_bps
        reasons: List[str] = []

        drift_ok = drift >= threshold
        if drift_ok:
            reasons.append(f"drift {drift}bps >= threshold {threshold}bps")
        else:
            reasons.append(f"drift {drift}bps below threshold {threshold}bps")

        all_ok = drift_ok
        for cond in parsed.conditions:
            ok, why = self._check(cond, portfolio, now_ms, last_rebalanced_at_ms)
            reasons.append(why)
            all_ok = all_ok and ok

        return ConditionResult(met=all_ok, drift_bps=drift, threshold_bps=threshold, reasons=tuple(reasons))

    def _check(
        self,
        cond: ParsedCondition,
        portfolio: PortfolioState,
        now_ms: int,
        last_rebalanced_at_ms: Optional[int],
    ):
        label = f"{cond.condition_type.value} {cond.operator.value} {cond.value}"

        if cond.condition_type == ConditionType.PORTFOLIO_VALUE:
            observed = portfolio.total_value_usd
        elif cond.condition_type == ConditionType.TIME_SINCE_REBALANCE:
            if last_rebalanced_at_ms is None:
                # never rebalanced: any elapsed-time condition is satisfied
                return True, f"{label}: never rebalanced"
            observed = Decimal(max(0, now_ms - last_rebalanced_at_ms)) / Decimal(1000)
        else:
            pos = portfolio.position(cond.token)
            if pos is None:
                return False, f"{label}: token {cond.token} not in portfolio"
            observed = pos.price_usd if cond.condition_type == ConditionType.PRICE else pos.value_usd

        ok = _compare(observed, cond.operator, cond.value)
        return ok, f"{label}: observed {observed:.4f} -> {'met' if ok else 'not met'}"
