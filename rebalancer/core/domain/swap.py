from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class QuoteRequest:
    chain_id: int
    from_token: str
    to_token: str
    from_amount: int
    account: str  # delegated account; venues build calldata for it
    from_decimals: int = 18
    to_decimals: int = 18
    slippage_bps: int = 100


@dataclass(frozen=True)
class Quote:
    """
    Priced offer from one venue. price_impact_pct is None when the venue
    does not report it; the aggregator then derives it from oracle prices.
    """
    venue: str
    from_token: str
    to_token: str
    from_amount: int
    to_amount: int
    call_target: str
    call_data: str
    native_value: int = 0
    price_impact_pct: Optional[float] = None
    min_output: Optional[int] = None
    gas_estimate: Optional[int] = None


@dataclass(frozen=True)
class RoutedSwap:
    """
    One executable leg handed to the call builder.
    is_wrap marks the synthetic native -> wrapped step (1:1, no slippage check).
    """
    from_token: str
    to_token: str
    from_amount: int
    to_amount: int
    min_output: int
    venue: str
    target: str
    call_data: str
    native_value: int = 0
    price_impact_pct: float = 0.0
    is_wrap: bool = False


@dataclass(frozen=True)
class TxRequest:
    chain_id: int
    to: str
    data: str
    value: int = 0
    from_address: Optional[str] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    # set by MEV protection
    relay_url: Optional[str] = None
    intent_id: Optional[str] = None
    mev_mode: Optional[str] = None


@dataclass(frozen=True)
class TxOutcome:
    tx_hash: str
    status: int
    gas_used: int
    effective_gas_price: int
    block_number: Optional[int] = None
    receipt: Optional[Dict[str, Any]] = None

    @property
    def gas_cost(self) -> int:
        return self.gas_used * self.effective_gas_price
