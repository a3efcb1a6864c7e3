"""Feed synchronization: provider pages into the catalog.

For every registered adapter and configured country:
1. Split the retention window into monthly date batches
2. Page through each batch (bounded by the adapter's pagination policy)
3. Retry transient page failures with backoff, skip pages that still fail
4. Normalize and upsert events one by one, skipping bad records
5. Prune events that left the retention window
6. Record the outcome in feed_sync_status

Usage:
    result = await run_full_sync()
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from concertfeed.adapters import build_adapter, list_adapters
from concertfeed.adapters.base import FeedAdapter, RawFeedPage
from concertfeed.config import Settings, get_settings
from concertfeed.core.catalog_model import SyncStatus
from concertfeed.core.catalog_store import CatalogStore, get_catalog_store
from concertfeed.core.exceptions import (
    FetchError,
    NormalizationError,
    PersistenceError,
    RecordWriteError,
    SyncAlreadyRunningError,
    TransientFetchError,
)
from concertfeed.core.retry import RetryConfig, call_with_retry
from concertfeed.logging import get_logger, log_sync_pair
from concertfeed.utils.date_ranges import DateBatch, monthly_batches

logger = get_logger(__name__)

SKIPPED = "skipped"

# (source, country) pairs currently syncing in this process
_running_pairs: set[tuple[str, str]] = set()


@dataclass
class PairSyncResult:
    """Outcome of syncing one (source, country) pair."""

    source: str
    country: str
    status: str = SyncStatus.RUNNING.value

    batches_total: int = 0
    batches_completed: int = 0
    pages_fetched: int = 0
    pages_skipped: int = 0
    events_ingested: int = 0
    events_skipped: int = 0
    events_pruned: int = 0

    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "country": self.country,
            "status": self.status,
            "batches_total": self.batches_total,
            "batches_completed": self.batches_completed,
            "pages_fetched": self.pages_fetched,
            "pages_skipped": self.pages_skipped,
            "events_ingested": self.events_ingested,
            "events_skipped": self.events_skipped,
            "events_pruned": self.events_pruned,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class SyncRunResult:
    """Outcome of a full sweep over all pairs."""

    started_at: str
    completed_at: str | None = None
    pairs: list[PairSyncResult] = field(default_factory=list)

    @property
    def events_ingested(self) -> int:
        return sum(p.events_ingested for p in self.pairs)

    @property
    def events_skipped(self) -> int:
        return sum(p.events_skipped for p in self.pairs)

    @property
    def errors(self) -> list[str]:
        return [
            f"{p.source}/{p.country}: {p.error}"
            for p in self.pairs
            if p.status == SyncStatus.ERROR.value
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "status": "completed" if not self.errors else "completed_with_errors",
            "events_ingested": self.events_ingested,
            "events_skipped": self.events_skipped,
            "errors": self.errors,
            "pairs": [p.to_dict() for p in self.pairs],
        }


class SyncOrchestrator:
    """Drives adapters and the catalog store through a full sync."""

    def __init__(
        self,
        store: CatalogStore,
        adapters: list[FeedAdapter],
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._today = today
        self.retry_config = RetryConfig(
            max_retries=self.settings.feed_fetch_max_retries,
            initial_delay=self.settings.feed_fetch_backoff_seconds,
        )

    # ==========================================
    # Sweep
    # ==========================================

    async def sync_all(self) -> SyncRunResult:
        """Sync every (adapter, country) pair.

        A failing pair is logged and recorded; it never stops the others.
        """
        run = SyncRunResult(started_at=datetime.now(timezone.utc).isoformat())
        countries = self.settings.countries
        pairs = [(adapter, country) for adapter in self.adapters for country in countries]

        logger.info(
            "sync_started",
            sources=[a.source.value for a in self.adapters],
            countries=countries,
            pairs=len(pairs),
        )

        semaphore = asyncio.Semaphore(self.settings.feed_sync_concurrency)

        async def guarded(adapter: FeedAdapter, country: str) -> PairSyncResult:
            async with semaphore:
                try:
                    return await self.sync_pair(adapter, country)
                except SyncAlreadyRunningError as e:
                    logger.warning("sync_pair_already_running", source=e.source, country=country)
                    return PairSyncResult(
                        source=adapter.source.value,
                        country=country,
                        status=SKIPPED,
                        error=str(e),
                    )
                except Exception as e:
                    logger.error(
                        "sync_pair_failed",
                        source=adapter.source.value,
                        country=country,
                        error=str(e),
                        exc_info=True,
                    )
                    return PairSyncResult(
                        source=adapter.source.value,
                        country=country,
                        status=SyncStatus.ERROR.value,
                        error=str(e),
                    )

        run.pairs = list(await asyncio.gather(*(guarded(a, c) for a, c in pairs)))
        run.completed_at = datetime.now(timezone.utc).isoformat()

        logger.info(
            "sync_completed",
            events_ingested=run.events_ingested,
            events_skipped=run.events_skipped,
            errors=len(run.errors),
        )
        return run

    # ==========================================
    # One pair
    # ==========================================

    async def sync_pair(self, adapter: FeedAdapter, country: str) -> PairSyncResult:
        """Sync one source for one country and record the outcome.

        Raises:
            SyncAlreadyRunningError: the pair is already being synced
            PersistenceError: the claim itself could not be written
        """
        source = adapter.source.value
        key = (source, country)
        if key in _running_pairs:
            raise SyncAlreadyRunningError(source, country)

        _running_pairs.add(key)
        try:
            if not await self.store.claim_sync(source, country):
                raise SyncAlreadyRunningError(source, country)

            with log_sync_pair(source, country):
                return await self._sync_claimed_pair(adapter, country)
        finally:
            _running_pairs.discard(key)

    async def _sync_claimed_pair(self, adapter: FeedAdapter, country: str) -> PairSyncResult:
        source = adapter.source.value
        result = PairSyncResult(source=source, country=country)
        started = time.monotonic()
        logger.info("sync_pair_started")

        try:
            deadline = self.settings.feed_sync_pair_deadline_seconds
            if deadline:
                await asyncio.wait_for(self._sync_batches(adapter, country, result), timeout=deadline)
            else:
                await self._sync_batches(adapter, country, result)

            result.events_pruned = await self.store.prune_stale_events(source, today=self._today())
        except asyncio.TimeoutError:
            deadline = self.settings.feed_sync_pair_deadline_seconds
            result.status = SyncStatus.ERROR.value
            result.error = f"Sync deadline of {deadline}s exceeded"
            logger.error("sync_pair_aborted", error=result.error, deadline=deadline)
        except Exception as e:
            result.status = SyncStatus.ERROR.value
            result.error = str(e) or type(e).__name__
            logger.error("sync_pair_aborted", error=result.error, exc_info=True)
        else:
            result.status = SyncStatus.SUCCESS.value

        result.duration_seconds = round(time.monotonic() - started, 2)
        await self._record_outcome(result)

        logger.info(
            "sync_pair_finished",
            status=result.status,
            events_ingested=result.events_ingested,
            events_skipped=result.events_skipped,
            pages_skipped=result.pages_skipped,
            events_pruned=result.events_pruned,
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _record_outcome(self, result: PairSyncResult) -> None:
        """Write the pair's status row, releasing its running claim.

        A failed success write is retried as an error write. If the store
        rejects both, the claim stays ``running`` until the claim TTL
        expires, which is always shorter than the schedule interval.
        """
        counts = {
            "events_ingested": result.events_ingested,
            "events_skipped": result.events_skipped,
            "pages_skipped": result.pages_skipped,
        }
        if result.status == SyncStatus.SUCCESS.value:
            try:
                await self.store.mark_sync_success(result.source, result.country, **counts)
                return
            except PersistenceError as e:
                result.status = SyncStatus.ERROR.value
                result.error = f"Could not record sync success: {e}"

        try:
            await self.store.mark_sync_error(
                result.source, result.country, result.error or "Unknown error", **counts
            )
        except PersistenceError as e:
            logger.error("sync_status_write_failed", error=str(e), pair_error=result.error)
            result.error = f"{result.error}; status not recorded: {e}"

    async def _sync_batches(
        self,
        adapter: FeedAdapter,
        country: str,
        result: PairSyncResult,
    ) -> None:
        batches = monthly_batches(
            self._today(),
            self.settings.feed_event_retention_days_past,
            self.settings.feed_event_retention_months_future,
        )
        result.batches_total = len(batches)

        for index, batch in enumerate(batches, start=1):
            ingested_before = result.events_ingested
            await self.sync_batch(adapter, country, batch, result)
            result.batches_completed += 1
            logger.info(
                "batch_completed",
                batch=f"{index}/{len(batches)}",
                start=batch.start_date.isoformat(),
                end=batch.end_date.isoformat(),
                events=result.events_ingested - ingested_before,
            )

    # ==========================================
    # One batch
    # ==========================================

    async def sync_batch(
        self,
        adapter: FeedAdapter,
        country: str,
        batch: DateBatch,
        result: PairSyncResult,
    ) -> None:
        """Page through one date batch.

        Stops on an empty page, when the reported total pages are exhausted,
        or at the adapter's pagination ceiling, whichever comes first.
        """
        policy = adapter.pagination
        page = 0

        while policy.allows(page):
            feed = await self.fetch_page(adapter, country, page, batch)

            if feed is None:
                result.pages_skipped += 1
                page += 1
                continue

            if not feed.events:
                break

            result.pages_fetched += 1
            await self.ingest_events(adapter, feed.events, result)

            page += 1
            if page >= feed.page.total_pages:
                break
            if not policy.allows(page):
                logger.warning(
                    "pagination_ceiling_reached",
                    max_pages=policy.max_pages,
                    total_pages=feed.page.total_pages,
                    batch_start=batch.start_date.isoformat(),
                )
                break

            await self._sleep(self.settings.feed_page_delay_seconds)

    async def fetch_page(
        self,
        adapter: FeedAdapter,
        country: str,
        page: int,
        batch: DateBatch,
    ) -> RawFeedPage | None:
        """Fetch a page with retry. Returns None when the page has to be skipped."""
        timeout = self.settings.feed_fetch_timeout_seconds

        async def attempt() -> RawFeedPage:
            try:
                return await asyncio.wait_for(
                    adapter.fetch_feed(country, page, batch.start_param, batch.end_param),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransientFetchError(
                    f"Fetch of page {page} timed out after {timeout}s",
                    source=adapter.source.value,
                ) from e

        try:
            return await call_with_retry(attempt, config=self.retry_config, sleep=self._sleep)
        except FetchError as e:
            logger.error(
                "page_skipped",
                page=page,
                batch_start=batch.start_date.isoformat(),
                error=str(e),
                transient=isinstance(e, TransientFetchError),
            )
            return None

    async def ingest_events(
        self,
        adapter: FeedAdapter,
        raw_events: list[dict[str, Any]],
        result: PairSyncResult,
    ) -> None:
        """Normalize and upsert each event; bad records are counted and skipped.

        PersistenceError is not caught here: an unreachable store aborts the pair.
        """
        for raw in raw_events:
            record_id = raw.get("id") if isinstance(raw, dict) else None
            try:
                event = adapter.normalize_event(raw)
            except NormalizationError as e:
                result.events_skipped += 1
                logger.debug("event_skipped", event_id=record_id, reason=str(e))
                continue
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                result.events_skipped += 1
                logger.debug("event_malformed", event_id=record_id, error=repr(e))
                continue

            try:
                await self.store.upsert_event(event)
            except RecordWriteError as e:
                result.events_skipped += 1
                logger.warning("event_write_rejected", event_id=record_id, error=str(e))
                continue

            result.events_ingested += 1


async def run_full_sync(
    settings: Settings | None = None,
    store: CatalogStore | None = None,
) -> SyncRunResult:
    """Build every registered adapter and sync all pairs."""
    settings = settings or get_settings()
    store = store or get_catalog_store()
    adapters = [build_adapter(source_id, settings) for source_id in list_adapters()]

    try:
        return await SyncOrchestrator(store, adapters, settings).sync_all()
    finally:
        for adapter in adapters:
            await adapter.aclose()
