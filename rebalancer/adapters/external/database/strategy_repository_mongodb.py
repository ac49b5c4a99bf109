import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError

from ....core.domain.entities.strategy_entity import StrategyEntity
from ....core.repositories.strategy_repository import StrategyRepository


class StrategyRepositoryMongoDB(StrategyRepository):
    """
    Mongo implementation for strategies (documents keyed by `id`).
    """

    COLLECTION = "strategies"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db[self.COLLECTION]
        self._logger = logging.getLogger(self.__class__.__name__)

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("id", 1)], unique=True, name="ux_id")
        await self._col.create_index(
            [("user_address", 1), ("onchain_id", 1), ("chain_id", 1)],
            unique=True,
            name="ux_user_onchain_chain",
        )
        await self._col.create_index([("is_active", 1), ("is_deployed", 1)], name="ix_active_deployed")

    async def ping(self) -> bool:
        res = await self._db.command("ping")
        return bool(res.get("ok"))

    async def upsert(self, strategy: StrategyEntity) -> None:
        now_ms = int(time.time() * 1000)
        now_iso = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        doc = strategy.model_dump(mode="json", exclude={"created_at", "updated_at"})
        update = {
            "$set": {
                **doc,
                "updated_at": now_ms,
            },
            "$setOnInsert": {
                "created_at": strategy.created_at or now_ms,
                "created_at_iso": now_iso,
            },
        }
        await self._col.update_one({"id": strategy.id}, update, upsert=True)

    async def get_by_id(self, strategy_id: str) -> Optional[StrategyEntity]:
        doc = await self._col.find_one({"id": strategy_id}, projection={"_id": False})
        return self._to_entity(doc) if doc else None

    async def list_monitorable(self) -> List[StrategyEntity]:
        cursor = self._col.find(
            {
                "is_active": True,
                "is_deployed": True,
                "delegator_address": {"$nin": [None, ""]},
            },
            projection={"_id": False},
        )
        docs = await cursor.to_list(length=None)
        out: List[StrategyEntity] = []
        for d in docs:
            entity = self._to_entity(d)
            if entity is not None:
                out.append(entity)
        return out

    def _to_entity(self, doc: dict) -> Optional[StrategyEntity]:
        try:
            return StrategyEntity.model_validate(doc)
        except PydanticValidationError as exc:
            # a broken document must not hide the other strategies
            self._logger.warning("Skipping malformed strategy doc %s: %s", doc.get("id"), exc)
            return None
