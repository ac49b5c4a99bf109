from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..domain.entities.job_entity import RebalanceJob

LEASE_EXPIRED_ERROR = "lease expired on the final attempt"


class JobQueueRepository(ABC):
    """
    Durable priority queue for rebalance jobs.

    Retry/backoff *policy* lives in ProcessRebalanceJobUseCase; the
    repository only offers the atomic primitives.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def enqueue(self, job: RebalanceJob) -> RebalanceJob:
        raise NotImplementedError

    @abstractmethod
    async def has_open_job(self, strategy_id: str) -> bool:
        """
        True if a PENDING or ACTIVE job exists for the strategy.
        """
        raise NotImplementedError

    @abstractmethod
    async def claim_next(self, now_ms: int, lease_ms: int) -> Optional[RebalanceJob]:
        """
        Atomically take the ready job with the lowest priority number (oldest first),
        mark it ACTIVE with a lease and increment attempts.
        Jobs whose lease expired are claimable again while attempts remain;
        with none left they are marked FAILED with LEASE_EXPIRED_ERROR.
        """
        raise NotImplementedError

    @abstractmethod
    async def mark_completed(self, job: RebalanceJob) -> None:
        raise NotImplementedError

    @abstractmethod
    async def reschedule(self, job: RebalanceJob, run_at_ms: int, error_msg: str) -> None:
        """
        Back to PENDING, claimable again from run_at_ms.
        """
        raise NotImplementedError

    @abstractmethod
    async def mark_failed(self, job: RebalanceJob, error_msg: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def counts(self, now_ms: int) -> Dict[str, int]:
        """
        {"pending", "delayed", "active", "completed", "failed"}
        """
        raise NotImplementedError
