"""Scheduler control routes - manage the recurring sync job."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks

from concertfeed.logging import get_logger
from concertfeed.scheduler import (
    get_last_run,
    get_scheduler_status,
    pause_scheduler,
    resume_scheduler,
    trigger_manual_sync,
)

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def scheduler_status() -> dict[str, Any]:
    """Get current scheduler status including last run info."""
    return get_scheduler_status()


@router.post("/pause")
async def pause() -> dict[str, str]:
    """Pause the scheduler (jobs won't run until resumed)."""
    pause_scheduler()
    return {"status": "paused", "message": "Scheduler paused. Jobs will not run until resumed."}


@router.post("/resume")
async def resume() -> dict[str, str]:
    resume_scheduler()
    return {"status": "resumed", "message": "Scheduler resumed. Jobs will run as scheduled."}


@router.post("/trigger", status_code=202)
async def trigger(background_tasks: BackgroundTasks) -> dict[str, str]:
    """Manually trigger the scheduled sync job (runs in background)."""
    logger.info("manual_trigger_requested")
    background_tasks.add_task(trigger_manual_sync)
    return {
        "status": "triggered",
        "message": "Feed sync started in background. Check /scheduler for status.",
    }


@router.get("/last-run")
async def last_run() -> dict[str, Any]:
    """Get details of the last sync sweep."""
    return get_last_run()
