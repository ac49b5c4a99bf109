from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.entities.rebalance_entity import RebalanceRecord
from ....core.repositories.rebalance_repository import RebalanceRepository


class RebalanceRepositoryMongoDB(RebalanceRepository):
    """
    Mongo implementation for the rebalance audit trail (insert-only).
    """

    COLLECTION = "rebalances"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("id", 1)], unique=True, name="ux_id")
        await self._col.create_index([("strategy_id", 1), ("created_at", -1)], name="ix_strategy_created")
        await self._col.create_index([("status", 1), ("created_at", -1)], name="ix_status_created")

    async def insert(self, record: RebalanceRecord) -> None:
        await self._col.insert_one(record.model_dump(mode="json"))

    async def latest_for_strategy(self, strategy_id: str) -> Optional[RebalanceRecord]:
        doc = await self._col.find_one(
            {"strategy_id": strategy_id},
            sort=[("created_at", -1)],
            projection={"_id": False},
        )
        return RebalanceRecord.model_validate(doc) if doc else None

    async def list_for_strategy(self, strategy_id: str, limit: int = 50) -> List[RebalanceRecord]:
        cursor = self._col.find(
            {"strategy_id": strategy_id},
            sort=[("created_at", -1)],
            limit=limit,
            projection={"_id": False},
        )
        docs = await cursor.to_list(length=limit)
        return [RebalanceRecord.model_validate(d) for d in docs]
