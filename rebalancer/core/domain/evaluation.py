from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from .enums.strategy_enums import ConditionOperator, ConditionType


# ---------- parse ----------

@dataclass(frozen=True)
class ParsedAsset:
    address: str  # normalized (lowercase)
    weight_bps: int
    symbol: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True)
class ParsedCondition:
    condition_type: ConditionType
    operator: ConditionOperator
    value: Decimal
    token: Optional[str] = None


@dataclass(frozen=True)
class ParsedStrategy:
    strategy_id: str
    chain_id: int
    delegator: str
    assets: Tuple[ParsedAsset, ...]
    conditions: Tuple[ParsedCondition, ...]
    drift_threshold_bps: int
    interval_sec: int


# ---------- analyze ----------

@dataclass(frozen=True)
class TokenPosition:
    address: str
    symbol: Optional[str]
    decimals: int
    balance: int  # raw units
    price_usd: Decimal
    value_usd: Decimal
    current_weight_bps: int
    target_weight_bps: int

    @property
    def deviation_bps(self) -> int:
        return self.current_weight_bps - self.target_weight_bps


@dataclass(frozen=True)
class PortfolioState:
    """
    Snapshot of the delegated account for one evaluation.
    drift_bps = max |current_weight - target_weight| over all tokens.
    """
    account: str
    positions: Tuple[TokenPosition, ...]
    total_value_usd: Decimal
    drift_bps: int

    def position(self, address: str) -> Optional[TokenPosition]:
        addr = (address or "").lower()
        for p in self.positions:
            if p.address == addr:
                return p
        return None


# ---------- conditions ----------

@dataclass(frozen=True)
class ConditionResult:
    met: bool
    drift_bps: int
    threshold_bps: int
    reasons: Tuple[str, ...] = ()

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


@dataclass(frozen=True)
class DriftCheck:
    needs_rebalancing: bool
    drift_bps: int
    threshold_bps: int
    reason: str


# ---------- plan ----------

@dataclass(frozen=True)
class PlannedSwap:
    from_token: str
    to_token: str
    from_amount: int  # raw units of from_token
    expected_to_amount: int  # raw units of to_token at oracle prices
    value_usd: Decimal
    from_decimals: int
    to_decimals: int
    reason: str


@dataclass(frozen=True)
class ExecutionPlan:
    strategy_id: str
    should_execute: bool
    reason: str
    drift_bps: int
    threshold_bps: int
    swaps: Tuple[PlannedSwap, ...] = ()
    portfolio: Optional[PortfolioState] = field(default=None, compare=False)
