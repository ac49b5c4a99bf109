import logging
from decimal import ROUND_DOWN, Decimal
from typing import List, Optional

from ..domain.evaluation import (
    ConditionResult,
    ExecutionPlan,
    ParsedStrategy,
    PlannedSwap,
    PortfolioState,
    TokenPosition,
)


def _to_raw(usd: Decimal, pos: TokenPosition) -> int:
    if pos.price_usd <= 0:
        return 0
    units = usd / pos.price_usd * (Decimal(10) ** pos.decimals)
    return int(units.to_integral_value(rounding=ROUND_DOWN))


class ActionPlannerService:
    """
    Stage 4: builds the swaps that move current weights back to target.

    For each token: delta_usd = total * target_weight - current_value.
    Sellers (delta < 0) and buyers (delta > 0) are sorted by size and matched
    greedily, largest against largest, so n tokens need at most n - 1 swaps.
    Deltas smaller than `min_trade_usd` are ignored.
    """

    def __init__(self, min_trade_usd: float = 1.0, logger: Optional[logging.Logger] = None):
        self._min_trade = Decimal(str(min_trade_usd))
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def plan(self, parsed: ParsedStrategy, portfolio: PortfolioState, conditions: ConditionResult) -> ExecutionPlan:
        if not conditions.met:
            return ExecutionPlan(
                strategy_id=parsed.strategy_id,
                should_execute=False,
                reason=conditions.reason,
                drift_bps=conditions.drift_bps,
                threshold_bps=conditions.threshold_bps,
                portfolio=portfolio,
            )

        swaps = self._match(portfolio)
        if not swaps:
            return ExecutionPlan(
                strategy_id=parsed.strategy_id,
                should_execute=False,
                reason=f"{conditions.reason}; no trade above ${self._min_trade} needed",
                drift_bps=conditions.drift_bps,
                threshold_bps=conditions.threshold_bps,
                portfolio=portfolio,
            )

        return ExecutionPlan(
            strategy_id=parsed.strategy_id,
            should_execute=True,
            reason=f"{conditions.reason}; {len(swaps)} swap(s) planned",
            drift_bps=conditions.drift_bps,
            threshold_bps=conditions.threshold_bps,
            swaps=tuple(swaps),
            portfolio=portfolio,
        )

    def _match(self, portfolio: PortfolioState) -> List[PlannedSwap]:
        total = portfolio.total_value_usd
        if total <= 0:
            return []

        sellers = []
        buyers = []
        for pos in portfolio.positions:
            target_usd = total * Decimal(pos.target_weight_bps) / Decimal(10_000)
            delta = target_usd - pos.value_usd
            if delta <= -self._min_trade:
                sellers.append([pos, -delta])
            elif delta >= self._min_trade:
                buyers.append([pos, delta])

        # deterministic order: size desc, then address
        sellers.sort(key=lambda x: (-x[1], x[0].address))
        buyers.sort(key=lambda x: (-x[1], x[0].address))

        swaps: List[PlannedSwap] = []
        i = j = 0
        while i < len(sellers) and j < len(buyers):
            seller, sell_left = sellers[i]
            buyer, buy_left = buyers[j]
            usd = min(sell_left, buy_left)

            if usd >= self._min_trade:
                from_amount = min(_to_raw(usd, seller), seller.balance)
                if from_amount > 0:
                    swaps.append(
                        PlannedSwap(
                            from_token=seller.address,
                            to_token=buyer.address,
                            from_amount=from_amount,
                            expected_to_amount=_to_raw(usd, buyer),
                            value_usd=usd,
                            from_decimals=seller.decimals,
                            to_decimals=buyer.decimals,
                            reason=(
                                f"sell {seller.symbol or seller.address} "
                                f"({seller.current_weight_bps}->{seller.target_weight_bps}bps) "
                                f"for {buyer.symbol or buyer.address} "
                                f"({buyer.current_weight_bps}->{buyer.target_weight_bps}bps), ${usd:.2f}"
                            ),
                        )
                    )

            sellers[i][1] = sell_left - usd
            buyers[j][1] = buy_left - usd
            if sellers[i][1] <= 0 or sellers[i][1] < self._min_trade:
                i += 1
            if buyers[j][1] <= 0 or buyers[j][1] < self._min_trade:
                j += 1

        return swaps
