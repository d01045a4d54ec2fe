"""Built-in scheduler — one-shot delayed jobs for ticks and task retries."""

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger("nodeflow.scheduler")

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler(scheduler: AsyncIOScheduler | None = None):
    scheduler = scheduler or get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler(scheduler: AsyncIOScheduler | None = None):
    global _scheduler
    scheduler = scheduler or get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    if scheduler is _scheduler:
        _scheduler = None


def add_delayed_job(
    job_id: str,
    func,
    delay_seconds: float,
    kwargs: dict | None = None,
    scheduler: AsyncIOScheduler | None = None,
):
    """Run ``func`` once after ``delay_seconds``. Replaces a pending job with the same id."""
    scheduler = scheduler or get_scheduler()
    run_date = datetime.now(tz=timezone.utc) + timedelta(seconds=delay_seconds)

    scheduler.add_job(
        func,
        trigger=DateTrigger(run_date=run_date, timezone="UTC"),
        id=job_id,
        kwargs=kwargs or {},
        replace_existing=True,
        misfire_grace_time=60,
    )
    logger.debug(f"Scheduled job '{job_id}' in {delay_seconds:.2f}s")


def remove_job(job_id: str, scheduler: AsyncIOScheduler | None = None) -> bool:
    scheduler = scheduler or get_scheduler()
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return False
    logger.debug(f"Removed job '{job_id}'")
    return True


def list_jobs(scheduler: AsyncIOScheduler | None = None) -> list[dict]:
    scheduler = scheduler or get_scheduler()
    jobs = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next run time yet
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return jobs
