"""Sync routes - start a feed sync and inspect per-pair status."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from concertfeed.core.catalog_store import CatalogStore, get_catalog_store
from concertfeed.logging import get_logger
from concertfeed.scheduler import run_scheduled_sync

logger = get_logger(__name__)
router = APIRouter()


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_sync(background_tasks: BackgroundTasks) -> dict[str, str]:
    """Start a full sync of every source and country (runs in background).

    Poll ``/sync/status`` or ``/scheduler`` for the outcome.
    """
    logger.info("sync_requested")
    background_tasks.add_task(run_scheduled_sync)
    return {
        "status": "accepted",
        "message": "Feed sync started in background. Check /sync/status for progress.",
    }


@router.get("/status")
async def sync_status(
    source: str | None = None,
    store: CatalogStore = Depends(get_catalog_store),
) -> dict[str, Any]:
    """Last recorded outcome per source/country pair."""
    rows = await store.list_sync_status(source.upper() if source else None)
    return {"total": len(rows), "pairs": rows}
