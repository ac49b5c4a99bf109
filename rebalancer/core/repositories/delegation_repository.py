from abc import ABC, abstractmethod
from typing import Optional

from ..domain.entities.delegation_entity import DelegationEntity


class DelegationRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, delegation: DelegationEntity) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_active(self, strategy_id: str, now_ms: int) -> Optional[DelegationEntity]:
        """
        The single active, unrevoked, unexpired delegation of a strategy (newest wins).
        """
        raise NotImplementedError
