from abc import ABC, abstractmethod

from ..domain.entities.intent_entity import IntentEntity


class IntentRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, intent: IntentEntity) -> None:
        raise NotImplementedError
