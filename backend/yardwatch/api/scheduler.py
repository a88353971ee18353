"""
API endpoints for inspecting and triggering the scheduled alert jobs.
"""
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from yardwatch.api.deps import verify_admin_key
from yardwatch.config import get_settings
from yardwatch.errors import NotFoundError
from yardwatch.services.scheduler import scheduler
from yardwatch.services.alert_jobs import ALERT_JOBS

router = APIRouter(
    prefix="/api/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(verify_admin_key)],
)


class JobStatus(BaseModel):
    id: str
    name: str
    next_run: Optional[str]
    paused: bool
    trigger: str


class JobHistoryEntry(BaseModel):
    timestamp: str
    status: str
    scheduled_run_time: Optional[str] = None
    error: Optional[str] = None


@router.get("/jobs", response_model=List[JobStatus])
async def list_jobs():
    """List all scheduled jobs."""
    return scheduler.get_jobs()


@router.get("/jobs/available")
async def list_available_jobs():
    """List the jobs that can be triggered."""
    return {
        job_id: {"description": config["description"]}
        for job_id, config in ALERT_JOBS.items()
    }


@router.post("/jobs/{job_id}/run")
async def run_job_now(job_id: str, background_tasks: BackgroundTasks):
    """Trigger a job to run immediately (in addition to its schedule)."""
    if job_id not in ALERT_JOBS:
        raise NotFoundError(f"Unknown job: {job_id}")

    # Run in background to not block the response; pass the configured
    # cron so the stray-trigger guard accepts it
    job_func = ALERT_JOBS[job_id]["func"]
    background_tasks.add_task(job_func, cron=get_settings().alert_cron)

    return {"message": f"Job {job_id} triggered"}


@router.get("/jobs/{job_id}/history", response_model=List[JobHistoryEntry])
async def get_job_history(job_id: str, limit: int = 20):
    """Get execution history for a job."""
    return scheduler.get_job_history(job_id, limit=limit)


@router.get("/status")
async def scheduler_status():
    """Get scheduler status."""
    return {
        "running": scheduler.is_running,
        "job_count": len(scheduler.get_jobs()),
        "jobs": scheduler.get_jobs(),
    }
