from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..enums.rebalance_enums import JobPriority, JobStatus


class RebalanceJob(BaseModel):
    """
    One unit of work in the durable rebalance queue.

    The scheduler fills strategy_id/user_address/chain_id/drift_bps/priority;
    the queue owns status, attempts, run_at and the lease.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    strategy_id: str
    user_address: str
    chain_id: int
    drift_bps: int
    priority: int = JobPriority.LOW.value
    triggered_by: str = "monitor"

    status: JobStatus = JobStatus.PENDING
    attempts: int = 0  # incremented on every claim
    max_attempts: int = 3
    backoff_base_sec: float = 2.0

    run_at: int = 0  # ms, not claimable before this
    lease_until: Optional[int] = None
    last_error: Optional[str] = None

    created_at: int = 0
    updated_at: Optional[int] = None
