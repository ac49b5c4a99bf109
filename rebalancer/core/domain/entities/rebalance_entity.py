from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..enums.rebalance_enums import RebalanceStatus


class RebalanceRecord(BaseModel):
    """
    Append-only audit entry, one per executor attempt that reached the
    submit-or-fail boundary. Never updated after insert.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    strategy_id: str
    chain_id: int
    user_address: str

    job_id: Optional[str] = None
    attempt: int = 1

    status: RebalanceStatus
    # real hash only when something was broadcast; placeholder otherwise
    tx_hash: str

    drift_bps: int
    drift_after_bps: Optional[int] = None
    swaps_executed: int = 0

    gas_used: int = 0
    gas_price: int = 0
    gas_cost: int = 0

    error_message: Optional[str] = None
    executed_by: Optional[str] = None

    created_at: int  # ms
