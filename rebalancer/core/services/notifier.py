from abc import ABC, abstractmethod
from typing import Optional


class Notifier(ABC):
    """
    Outbound notification port.

    rebalance_* events are user-facing, system_alert is for operators.
    Implementations must never raise: a lost notification never fails a job.
    """

    @abstractmethod
    async def rebalance_started(self, strategy_id: str, drift_bps: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def rebalance_completed(
        self,
        strategy_id: str,
        success: bool,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def system_alert(self, message: str) -> None:
        raise NotImplementedError

