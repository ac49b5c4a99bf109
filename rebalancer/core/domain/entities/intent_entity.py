from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..enums.rebalance_enums import IntentStatus


class IntentEntity(BaseModel):
    """
    Deferred-execution record picked up by an off-chain solver.

    intent_data:
    {
      "target": "0x...",      # executor contract
      "calldata": "0x...",
      "value": "0",
      "deadline": 1700000000,  # unix seconds
      "intent_manager": "0x...",
      "mev_risk": 0.5          # 0..1 score at creation
    }
    """

    id: str
    user_address: str
    strategy_id: str
    chain_id: int
    intent_data: Dict[str, Any]
    status: IntentStatus = IntentStatus.PENDING
    priority: int = 5
    executed_tx_hash: Optional[str] = None
    created_at: int
    expires_at: int
