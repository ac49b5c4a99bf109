from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.entities.intent_entity import IntentEntity
from ....core.repositories.intent_repository import IntentRepository


class IntentRepositoryMongoDB(IntentRepository):
    """
    Mongo implementation for MEV intents (read by the solver side).
    """

    COLLECTION = "intents"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("id", 1)], unique=True, name="ux_id")
        await self._col.create_index([("status", 1), ("priority", 1)], name="ix_status_priority")
        await self._col.create_index([("strategy_id", 1)], name="ix_strategy")

    async def insert(self, intent: IntentEntity) -> None:
        await self._col.insert_one(intent.model_dump(mode="json"))
