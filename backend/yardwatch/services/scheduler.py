"""
Scheduler service for the recurring alert jobs.
Uses APScheduler for job management; all cron expressions are UTC.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Callable, Any
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, JobExecutionEvent

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


class AlertScheduler:
    """
    Manages scheduled alert jobs.

    Usage:
        scheduler = AlertScheduler()
        scheduler.add_cron_job("daily-alerts", run_daily_sweep, "0 9 * * *")
        scheduler.start()
    """

    _instance: Optional["AlertScheduler"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Never two sweeps at once
                "misfire_grace_time": 60 * 30,
            },
            timezone=timezone.utc,
        )
        self._job_history: Dict[str, List[Dict[str, Any]]] = {}
        self._initialized = True

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _record(self, job_id: str, entry: Dict[str, Any]):
        history = self._job_history.setdefault(job_id, [])
        history.append(entry)
        if len(history) > HISTORY_LIMIT:
            self._job_history[job_id] = history[-HISTORY_LIMIT:]

    def _on_job_executed(self, event: JobExecutionEvent):
        """Log successful job execution."""
        self._record(event.job_id, {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "success",
            "scheduled_run_time": event.scheduled_run_time.isoformat() if event.scheduled_run_time else None,
        })
        logger.info(f"Job {event.job_id} executed successfully")

    def _on_job_error(self, event: JobExecutionEvent):
        """Log job errors."""
        self._record(event.job_id, {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "error",
            "error": str(event.exception) if event.exception else "Unknown error",
        })
        logger.error(f"Job {event.job_id} failed: {event.exception}")

    def add_cron_job(
        self,
        job_id: str,
        func: Callable,
        cron_expression: str,
        **kwargs
    ) -> bool:
        """
        Add a job with cron-style scheduling.

        Args:
            job_id: Unique identifier for the job
            func: Async function to run
            cron_expression: Five-field crontab expression, UTC
            **kwargs: Additional arguments to pass to the function
        """
        try:
            trigger = CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
        except ValueError as e:
            logger.error(f"Invalid cron expression for {job_id}: {cron_expression} ({e})")
            return False

        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=f"Alerts: {job_id}",
            kwargs=kwargs,
            replace_existing=True,
        )

        logger.info(f"Added cron job {job_id}: {cron_expression}")
        return True

    def get_jobs(self) -> List[Dict[str, Any]]:
        """Get list of all scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "paused": next_run is None,
                "trigger": str(job.trigger),
            })
        return jobs

    def get_job_history(self, job_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Get execution history for a job."""
        history = self._job_history.get(job_id, [])
        return history[-limit:]

    def start(self):
        """Start the scheduler."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown()
            logger.info("Scheduler shutdown")

    @property
    def is_running(self) -> bool:
        return self._scheduler.running


# Global scheduler instance
scheduler = AlertScheduler()
