from datetime import datetime, timezone
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.entities.gas_sample_entity import GasSample
from ....core.repositories.gas_price_repository import GasPriceRepository


class GasPriceRepositoryMongoDB(GasPriceRepository):
    """
    Mongo implementation for periodic gas samples.
    Samples expire after 7 days (TTL on `expire_at`).
    """

    COLLECTION = "gas_prices"
    RETENTION_SEC = 7 * 24 * 3600

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("chain_id", 1), ("timestamp", -1)], name="ix_chain_ts")
        await self._col.create_index("expire_at", expireAfterSeconds=0, name="ttl_expire_at")

    async def insert(self, sample: GasSample) -> None:
        doc = sample.model_dump()
        doc["expire_at"] = datetime.fromtimestamp(sample.timestamp / 1000 + self.RETENTION_SEC, tz=timezone.utc)
        await self._col.insert_one(doc)

    async def list_since(self, chain_id: int, since_ms: int) -> List[GasSample]:
        cursor = self._col.find(
            {"chain_id": chain_id, "timestamp": {"$gte": since_ms}},
            sort=[("timestamp", 1)],
            projection={"_id": False, "expire_at": False},
        )
        docs = await cursor.to_list(length=None)
        return [GasSample.model_validate(d) for d in docs]
