from typing import List, Optional

from pydantic import BaseModel, Field

ZERO_BYTES32 = "0x" + "00" * 32


class Caveat(BaseModel):
    enforcer: str
    terms: str = "0x"
    args: str = "0x"


class DelegationEntity(BaseModel):
    """
    Signed permission from the delegated account (delegator) to the
    executor identity (delegate), restricted by caveats to rebalance calls.

    Read-only for this service: creation and revocation happen elsewhere.
    """

    id: str
    strategy_id: str
    chain_id: int

    delegator: str
    delegate: str
    authority: str = ZERO_BYTES32
    caveats: List[Caveat] = Field(default_factory=list)
    salt: int = 0
    signature: str

    is_active: bool = True
    expires_at: Optional[int] = None  # ms
    revoked_at: Optional[int] = None

    created_at: int = 0

    def is_usable(self, now_ms: int) -> bool:
        if not self.is_active or self.revoked_at is not None:
            return False
        return self.expires_at is None or self.expires_at > now_ms
