import time
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from ....core.domain.entities.job_entity import RebalanceJob
from ....core.domain.entities.rebalance_entity import RebalanceRecord
from ....core.domain.enums.rebalance_enums import JobPriority
from ....core.domain.exceptions import ConfigurationError, ValidationError
from ...external.database.rebalance_repository_mongodb import RebalanceRepositoryMongoDB
from .deps import get_db, get_supervisor

router = APIRouter(prefix="/admin", tags=["admin"])


# =========================
# Health / queue
# =========================

class HealthOutDTO(BaseModel):
    healthy: bool
    store_ok: bool
    queue: Dict[str, int] = {}
    error: Optional[str] = None


@router.get("/health", response_model=HealthOutDTO)
async def health(supervisor=Depends(get_supervisor)):
    """
    Run the store/queue health check on demand.
    """
    report = await supervisor.health_uc.run()
    return HealthOutDTO(healthy=report.healthy, store_ok=report.store_ok, queue=report.queue, error=report.error)


@router.get("/queue")
async def queue_counts(supervisor=Depends(get_supervisor)):
    """
    Queue depth by state: pending (ready), delayed (backing off), active, completed, failed.
    """
    return await supervisor.job_queue.counts(int(time.time() * 1000))


# =========================
# Strategies
# =========================

@router.get("/strategies/{strategy_id}/rebalances", response_model=List[RebalanceRecord])
async def list_rebalances(
    strategy_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Rebalance history of one strategy, newest first.
    """
    repo = RebalanceRepositoryMongoDB(db)
    return await repo.list_for_strategy(strategy_id, limit=limit)


class EnqueueOutDTO(BaseModel):
    job_id: str
    strategy_id: str
    drift_bps: int
    priority: int


@router.post("/strategies/{strategy_id}/enqueue", response_model=EnqueueOutDTO)
async def enqueue_rebalance(strategy_id: str, supervisor=Depends(get_supervisor)):
    """
    Manual trigger: enqueue a high-priority job regardless of the interval.
    The executor still re-evaluates and skips when nothing needs to move.
    """
    strategy = await supervisor.strategy_repo.get_by_id(strategy_id)
    if strategy is None:
        raise HTTPException(status_code=404, detail="Strategy not found")
    if await supervisor.job_queue.has_open_job(strategy_id):
        raise HTTPException(status_code=409, detail="Strategy already has a pending or active job")

    try:
        drift = await supervisor.engine.current_drift(strategy)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    s = supervisor.settings
    job = await supervisor.job_queue.enqueue(
        RebalanceJob(
            strategy_id=strategy.id,
            user_address=strategy.user_address,
            chain_id=strategy.chain_id,
            drift_bps=drift,
            priority=JobPriority.HIGH.value,
            triggered_by="manual",
            max_attempts=s.queue_max_attempts,
            backoff_base_sec=s.queue_backoff_base_sec,
        )
    )
    return EnqueueOutDTO(job_id=job.id, strategy_id=strategy.id, drift_bps=drift, priority=job.priority)


# =========================
# Gas / venues
# =========================

class GasOutDTO(BaseModel):
    chain: str
    gas_price_wei: int
    favorable: bool
    window_min: int
    window_max: int
    window_avg: int
    samples: int


@router.get("/gas/{chain}", response_model=GasOutDTO)
async def gas_status(chain: str, supervisor=Depends(get_supervisor)):
    try:
        cfg = supervisor.settings.chain(chain)
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    oracle = supervisor.gas_oracle
    stats = await oracle.get_gas_stats(cfg)
    return GasOutDTO(
        chain=cfg.name,
        gas_price_wei=await oracle.get_optimal_gas_price(cfg),
        favorable=await oracle.is_gas_favorable(cfg),
        window_min=stats.min,
        window_max=stats.max,
        window_avg=stats.avg,
        samples=stats.count,
    )


@router.get("/venues")
async def venues(supervisor=Depends(get_supervisor)):
    """
    {chain: {policy, venues: {venue: available}}}
    """
    out = {}
    for name, cfg in supervisor.settings.chains.items():
        out[name] = {
            "policy": cfg.venue_policy.value,
            "venues": supervisor.aggregator.adapter_status(cfg),
        }
    return out
