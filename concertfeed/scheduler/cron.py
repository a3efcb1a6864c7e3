"""Scheduled feed sync.

This module provides:
1. A recurring sync job driven by FEED_SYNC_SCHEDULE (crontab syntax, UTC)
2. Helpers for the API and CLI to control and monitor the scheduler
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import STATE_RUNNING
from apscheduler.triggers.cron import CronTrigger

from concertfeed.config import get_settings
from concertfeed.core.sync import run_full_sync
from concertfeed.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "feed_sync"

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None

# Serializes scheduled and manual sweeps within this process
_sync_lock = asyncio.Lock()

# Last run info
_last_run: dict[str, Any] = {
    "started_at": None,
    "completed_at": None,
    "status": "never_run",
    "events_ingested": 0,
    "events_skipped": 0,
    "errors": [],
    "pairs": [],
}


async def run_scheduled_sync() -> dict[str, Any]:
    """Run one sweep over every source and country, recording the outcome."""
    global _last_run

    if _sync_lock.locked():
        logger.warning("sync_skipped_already_running")
        return {**_last_run, "skipped": True}

    async with _sync_lock:
        _last_run = {
            "started_at": datetime.now(timezone.utc).isoformat(),
            "completed_at": None,
            "status": "running",
            "events_ingested": 0,
            "events_skipped": 0,
            "errors": [],
            "pairs": [],
        }

        try:
            result = await run_full_sync()
        except Exception as e:
            logger.error("scheduled_sync_failed", error=str(e), exc_info=True)
            _last_run["completed_at"] = datetime.now(timezone.utc).isoformat()
            _last_run["status"] = "failed"
            _last_run["errors"] = [str(e)]
            return _last_run

        _last_run = result.to_dict()
        return _last_run


def get_last_run() -> dict[str, Any]:
    return _last_run


def init_scheduler(schedule: str | None = None) -> AsyncIOScheduler:
    """Initialize and start the scheduler."""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    schedule = schedule or settings.feed_sync_schedule

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        run_scheduled_sync,
        CronTrigger.from_crontab(schedule, timezone=timezone.utc),
        id=JOB_ID,
        name=f"Feed sync ({schedule})",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.feed_sync_on_startup:
        scheduler.add_job(
            run_scheduled_sync,
            id=f"{JOB_ID}_startup",
            name="Feed sync on startup",
            replace_existing=True,
        )

    scheduler.start()
    logger.info("scheduler_started", schedule=schedule, next_run=get_next_run())

    return scheduler


def shutdown_scheduler() -> None:
    """Stop the scheduler without waiting for a running sweep."""
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("scheduler_stopped")


def get_scheduler_status() -> dict[str, Any]:
    """Get current scheduler status."""
    if scheduler is None:
        return {
            "status": "not_initialized",
            "jobs": [],
            "next_run": None,
            "last_run": _last_run,
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return {
        "status": "running" if scheduler.state == STATE_RUNNING else "paused",
        "jobs": jobs,
        "next_run": get_next_run(),
        "last_run": _last_run,
    }


def get_next_run() -> str | None:
    """Get the next scheduled run time."""
    if scheduler is None:
        return None

    job = scheduler.get_job(JOB_ID)
    if job and job.next_run_time:
        return job.next_run_time.isoformat()
    return None


def pause_scheduler() -> None:
    if scheduler:
        scheduler.pause()
        logger.info("scheduler_paused")


def resume_scheduler() -> None:
    if scheduler:
        scheduler.resume()
        logger.info("scheduler_resumed")


async def trigger_manual_sync() -> dict[str, Any]:
    """Manually trigger a sync sweep."""
    logger.info("manual_sync_triggered")
    return await run_scheduled_sync()
