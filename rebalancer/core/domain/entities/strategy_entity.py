from typing import List, Optional

from pydantic import BaseModel, Field


class TokenAllocation(BaseModel):
    address: str
    weight_bps: int
    symbol: Optional[str] = None
    decimals: Optional[int] = None


class ConditionBlock(BaseModel):
    # kept as raw strings: the parser owns validation so a bad block
    # becomes a ParseError instead of a load failure
    condition_type: str
    operator: str
    value: float
    token: Optional[str] = None


class ActionBlock(BaseModel):
    action_type: str
    drift_threshold_bps: Optional[int] = None
    interval_sec: Optional[int] = None


class StrategyEntity(BaseModel):
    """
    Canonical in-memory representation of a document in the
    'strategies' collection.

    Funds live in `delegator_address` (the delegated smart account),
    never in `user_address` (the owner's personal wallet).
    """

    id: str
    user_address: str
    chain_id: int
    onchain_id: int  # strategy id known by the executor contract
    name: str = ""

    delegator_address: Optional[str] = None

    tokens: List[TokenAllocation] = Field(default_factory=list)
    rebalance_interval: int  # seconds
    drift_threshold_bps: Optional[int] = None

    conditions: List[ConditionBlock] = Field(default_factory=list)
    actions: List[ActionBlock] = Field(default_factory=list)

    is_active: bool = True
    is_deployed: bool = False

    created_at: int = 0  # ms
    updated_at: Optional[int] = None
