"""Scheduler module for recurring feed syncs."""

from concertfeed.scheduler.cron import (
    get_last_run,
    get_next_run,
    get_scheduler_status,
    init_scheduler,
    pause_scheduler,
    resume_scheduler,
    run_scheduled_sync,
    shutdown_scheduler,
    trigger_manual_sync,
)

__all__ = [
    "get_last_run",
    "get_next_run",
    "get_scheduler_status",
    "init_scheduler",
    "pause_scheduler",
    "resume_scheduler",
    "run_scheduled_sync",
    "shutdown_scheduler",
    "trigger_manual_sync",
]
