import time
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.entities.delegation_entity import DelegationEntity
from ....core.repositories.delegation_repository import DelegationRepository


class DelegationRepositoryMongoDB(DelegationRepository):
    """
    Mongo implementation for delegations.
    `salt` is stored as a decimal string, it does not fit in int64.
    """

    COLLECTION = "delegations"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("id", 1)], unique=True, name="ux_id")
        await self._col.create_index(
            [("strategy_id", 1), ("is_active", 1), ("created_at", -1)],
            name="ix_strategy_active_created",
        )

    async def upsert(self, delegation: DelegationEntity) -> None:
        now_ms = int(time.time() * 1000)
        doc = delegation.model_dump(mode="json", exclude={"created_at"})
        doc["salt"] = str(delegation.salt)
        await self._col.update_one(
            {"id": delegation.id},
            {
                "$set": {**doc, "updated_at": now_ms},
                "$setOnInsert": {"created_at": delegation.created_at or now_ms},
            },
            upsert=True,
        )

    async def get_active(self, strategy_id: str, now_ms: int) -> Optional[DelegationEntity]:
        doc = await self._col.find_one(
            {
                "strategy_id": strategy_id,
                "is_active": True,
                "revoked_at": None,
                "$or": [{"expires_at": None}, {"expires_at": {"$gt": now_ms}}],
            },
            sort=[("created_at", -1)],
            projection={"_id": False},
        )
        if not doc:
            return None
        return DelegationEntity.model_validate(doc)
