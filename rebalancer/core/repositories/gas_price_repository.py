from abc import ABC, abstractmethod
from typing import List

from ..domain.entities.gas_sample_entity import GasSample


class GasPriceRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, sample: GasSample) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_since(self, chain_id: int, since_ms: int) -> List[GasSample]:
        raise NotImplementedError
