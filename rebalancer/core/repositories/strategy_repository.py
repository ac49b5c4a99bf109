from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.entities.strategy_entity import StrategyEntity


class StrategyRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """
        Cheap reachability check for the health check.
        """
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, strategy: StrategyEntity) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, strategy_id: str) -> Optional[StrategyEntity]:
        raise NotImplementedError

    @abstractmethod
    async def list_monitorable(self) -> List[StrategyEntity]:
        """
        Active + deployed strategies that have a delegated-account address.
        """
        raise NotImplementedError
