from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.entities.rebalance_entity import RebalanceRecord


class RebalanceRepository(ABC):
    """
    Append-only rebalance history. No update operations on purpose.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, record: RebalanceRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    async def latest_for_strategy(self, strategy_id: str) -> Optional[RebalanceRecord]:
        raise NotImplementedError

    @abstractmethod
    async def list_for_strategy(self, strategy_id: str, limit: int = 50) -> List[RebalanceRecord]:
        """
        Newest first.
        """
        raise NotImplementedError
