from fastapi import APIRouter, HTTPException

from app.api.deps import Aggregator, UsageScheduler
from app.core.scheduler import JobAlreadyRunning
from app.models.usage import AggregationReport

router = APIRouter()


@router.post("/check", response_model=AggregationReport)
async def check_thresholds(scheduler: UsageScheduler, aggregator: Aggregator):
    # Operator-triggered runs bypass the per-tick replica lock.
    try:
        return await scheduler.run_once(aggregator.check_thresholds)
    except JobAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/last-run", response_model=AggregationReport)
async def last_run(scheduler: UsageScheduler):
    if scheduler.last_result is None:
        raise HTTPException(status_code=404, detail="No aggregation run yet")
    return scheduler.last_result
