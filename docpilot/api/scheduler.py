"""Scheduler status, manual job runs and execution history."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..container import Services, get_services
from ..schemas.script import DispatchResponse, HistoryResponse, JobRunRequest

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])

MAX_HISTORY_LIMIT = 100


@router.get("")
def get_scheduler_status(services: Services = Depends(get_services)):
    """Scheduler state plus each registered job's last run."""
    return services.scheduler.status()


@router.get("/jobs")
def list_jobs(services: Services = Depends(get_services)):
    return {"jobs": services.scheduler.status()["jobs"]}


@router.post("/jobs/{name}", response_model=DispatchResponse)
async def run_job(
    name: str,
    request: JobRunRequest = JobRunRequest(),
    services: Services = Depends(get_services),
):
    """Run a scheduled job now, outside its interval."""
    result = await services.dispatcher.run_job(name, dry_run=request.dry_run, trigger="manual")
    return DispatchResponse(**result.to_dict())


@router.get("/history", response_model=HistoryResponse)
def get_history(
    limit: int = Query(50, ge=1),
    job: Optional[str] = Query(None),
    services: Services = Depends(get_services),
):
    """Most recent executions first. *limit* is capped at 100."""
    limit = min(limit, MAX_HISTORY_LIMIT)
    history = services.history.get_history(limit=limit, job_name=job)
    return HistoryResponse(history=history, total_count=len(history), limit=limit)
