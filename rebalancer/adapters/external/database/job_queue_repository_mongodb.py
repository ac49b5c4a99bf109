import time
from datetime import datetime, timezone
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ....core.domain.entities.job_entity import RebalanceJob
from ....core.domain.enums.rebalance_enums import JobStatus
from ....core.repositories.job_queue_repository import LEASE_EXPIRED_ERROR, JobQueueRepository


class JobQueueRepositoryMongoDB(JobQueueRepository):
    """
    Mongo-backed durable queue.

    PENDING -> ACTIVE (claim, lease) -> COMPLETED
                                     -> PENDING (retry, run_at in the future)
                                     -> FAILED (attempts exhausted)

    An ACTIVE job whose lease expired (consumer crashed) is claimable again,
    which gives at-least-once delivery, up to max_attempts runs.
    """

    COLLECTION = "rebalance_jobs"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("id", 1)], unique=True, name="ux_id")
        await self._col.create_index(
            [("status", 1), ("priority", 1), ("run_at", 1), ("created_at", 1)],
            name="ix_claim_order",
        )
        await self._col.create_index([("strategy_id", 1), ("status", 1)], name="ix_strategy_status")

    async def enqueue(self, job: RebalanceJob) -> RebalanceJob:
        now_ms = int(time.time() * 1000)
        stored = job.model_copy(
            update={
                "status": JobStatus.PENDING,
                "attempts": 0,
                "run_at": job.run_at or now_ms,
                "created_at": job.created_at or now_ms,
                "updated_at": now_ms,
            }
        )
        doc = stored.model_dump(mode="json")
        doc["created_at_iso"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        await self._col.insert_one(doc)
        return stored

    async def has_open_job(self, strategy_id: str) -> bool:
        doc = await self._col.find_one(
            {"strategy_id": strategy_id, "status": {"$in": [JobStatus.PENDING.value, JobStatus.ACTIVE.value]}},
            projection={"_id": True},
        )
        return doc is not None

    async def claim_next(self, now_ms: int, lease_ms: int) -> Optional[RebalanceJob]:
        expired_lease = {"status": JobStatus.ACTIVE.value, "lease_until": {"$lt": now_ms}}
        # a lease that expired on the last attempt ends the job instead of running it again
        await self._col.update_many(
            {**expired_lease, "$expr": {"$gte": ["$attempts", "$max_attempts"]}},
            {
                "$set": {
                    "status": JobStatus.FAILED.value,
                    "lease_until": None,
                    "last_error": LEASE_EXPIRED_ERROR,
                    "updated_at": now_ms,
                }
            },
        )
        doc = await self._col.find_one_and_update(
            {
                "$or": [
                    {"status": JobStatus.PENDING.value, "run_at": {"$lte": now_ms}},
                    {**expired_lease, "$expr": {"$lt": ["$attempts", "$max_attempts"]}},
                ]
            },
            {
                "$set": {
                    "status": JobStatus.ACTIVE.value,
                    "lease_until": now_ms + lease_ms,
                    "updated_at": now_ms,
                },
                "$inc": {"attempts": 1},
            },
            sort=[("priority", 1), ("run_at", 1), ("created_at", 1)],
            projection={"_id": False, "created_at_iso": False},
            return_document=ReturnDocument.AFTER,
        )
        return RebalanceJob.model_validate(doc) if doc else None

    def _owned(self, job: RebalanceJob) -> Dict:
        # a consumer whose lease was taken over must not overwrite the new owner
        return {"id": job.id, "status": JobStatus.ACTIVE.value, "attempts": job.attempts}

    async def mark_completed(self, job: RebalanceJob) -> None:
        now_ms = int(time.time() * 1000)
        await self._col.update_one(
            self._owned(job),
            {"$set": {"status": JobStatus.COMPLETED.value, "lease_until": None, "updated_at": now_ms}},
        )

    async def reschedule(self, job: RebalanceJob, run_at_ms: int, error_msg: str) -> None:
        now_ms = int(time.time() * 1000)
        await self._col.update_one(
            self._owned(job),
            {
                "$set": {
                    "status": JobStatus.PENDING.value,
                    "run_at": run_at_ms,
                    "lease_until": None,
                    "last_error": error_msg,
                    "updated_at": now_ms,
                }
            },
        )

    async def mark_failed(self, job: RebalanceJob, error_msg: str) -> None:
        now_ms = int(time.time() * 1000)
        await self._col.update_one(
            self._owned(job),
            {
                "$set": {
                    "status": JobStatus.FAILED.value,
                    "lease_until": None,
                    "last_error": error_msg,
                    "updated_at": now_ms,
                }
            },
        )

    async def counts(self, now_ms: int) -> Dict[str, int]:
        return {
            "pending": await self._col.count_documents(
                {"status": JobStatus.PENDING.value, "run_at": {"$lte": now_ms}}
            ),
            "delayed": await self._col.count_documents(
                {"status": JobStatus.PENDING.value, "run_at": {"$gt": now_ms}}
            ),
            "active": await self._col.count_documents({"status": JobStatus.ACTIVE.value}),
            "completed": await self._col.count_documents({"status": JobStatus.COMPLETED.value}),
            "failed": await self._col.count_documents({"status": JobStatus.FAILED.value}),
        }
