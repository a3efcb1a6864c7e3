"""Supabase-backed catalog of venues, attractions and events.

Every catalog write is an upsert keyed by ``(source, source_id)``, so
ingesting the same provider data any number of times converges to the same
rows. The event/attraction link table is replaced wholesale through the
``replace_event_attractions`` Postgres function, which runs as one
transaction.
"""

from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from concertfeed.config import Settings, get_settings
from concertfeed.core.catalog_model import (
    NormalizedAttraction,
    NormalizedEvent,
    NormalizedVenue,
    SyncStatus,
    UpsertResult,
)
from concertfeed.core.exceptions import PersistenceError, RecordWriteError
from concertfeed.logging import get_logger
from concertfeed.utils.date_ranges import retention_window

logger = get_logger(__name__)

VENUES = "venues"
ATTRACTIONS = "attractions"
EVENTS = "events"
EVENT_ATTRACTIONS = "event_attractions"
FEED_SYNC_STATUS = "feed_sync_status"

SOURCE_KEY = "source,source_id"

# Keeps PostgREST ``in.(...)`` filters well under URL length limits
IN_CHUNK_SIZE = 200

# Supabase caps every response at max-rows (1000 by default); reads page at
# this size and stop on the first short page.
SELECT_PAGE_SIZE = 1000

ATTRACTION_MATCH_COLUMNS = "id, name, source, source_id"

# event_attractions has no id; its primary key gives pages a total order
LINK_ORDER = "event_id,attraction_id"


class CatalogStore:
    """Catalog operations on top of a Supabase client."""

    def __init__(
        self,
        client: Client,
        settings: Settings | None = None,
        page_size: int = SELECT_PAGE_SIZE,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._settings = settings or get_settings()
        self.logger = get_logger("catalog_store")

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        return self._client

    # ==========================================
    # Low-level helpers
    # ==========================================

    def _execute(
        self,
        builder: Any,
        operation: str,
        table: str,
        record_level: bool = False,
    ) -> Any:
        """Execute a PostgREST request, translating failures.

        A PostgREST ``APIError`` on a single-record write means that record
        was rejected; anything at the transport level means the store is
        unavailable.
        """
        try:
            return builder.execute()
        except APIError as e:
            if record_level:
                raise RecordWriteError(
                    f"{table} {operation} rejected: {e.message or e}",
                    operation=operation,
                    table=table,
                ) from e
            raise PersistenceError(
                f"{table} {operation} failed: {e.message or e}",
                operation=operation,
                table=table,
            ) from e
        except (httpx.HTTPError, ConnectionError, OSError) as e:
            raise PersistenceError(
                f"Catalog store unavailable: {e}", operation=operation, table=table
            ) from e

    def _upsert_returning_id(self, table: str, row: dict[str, Any]) -> str:
        response = self._execute(
            self._client.table(table).upsert(row, on_conflict=SOURCE_KEY),
            "upsert",
            table,
            record_level=True,
        )
        if not response.data:
            raise RecordWriteError(
                f"{table} upsert returned no row", operation="upsert", table=table
            )
        return response.data[0]["id"]

    def _select_paged(self, table: str, build: Callable[[], Any]) -> list[dict[str, Any]]:
        """Read every row of a select, one ``range`` page at a time.

        ``build`` returns a fresh, totally ordered select builder per page.
        """
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            response = self._execute(
                build().range(offset, offset + self._page_size - 1),
                "select",
                table,
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < self._page_size:
                return rows
            offset += self._page_size

    def _select_in(
        self,
        table: str,
        columns: str,
        column: str,
        values: Iterable[Any],
        order: str = "id",
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        values = list(values)
        for i in range(0, len(values), IN_CHUNK_SIZE):
            chunk = values[i : i + IN_CHUNK_SIZE]
            rows.extend(
                self._select_paged(
                    table,
                    lambda: self._client.table(table)
                    .select(columns)
                    .filter(column, "in", in_list(chunk))
                    .order(order),
                )
            )
        return rows

    # ==========================================
    # Upserts
    # ==========================================

    async def upsert_venue(self, venue: NormalizedVenue) -> str:
        """Create or update a venue, returning its id."""
        return self._upsert_returning_id(VENUES, venue.to_row())

    async def upsert_attraction(self, attraction: NormalizedAttraction) -> str:
        """Create or update an attraction, returning its id."""
        return self._upsert_returning_id(ATTRACTIONS, attraction.to_row())

    async def replace_event_attractions(self, event_id: str, attraction_ids: list[str]) -> None:
        """Swap an event's attraction links for exactly ``attraction_ids``.

        Delete and insert run inside one database transaction, so readers see
        either the old set or the new one.
        """
        self._execute(
            self._client.rpc(
                "replace_event_attractions",
                {"p_event_id": event_id, "p_attraction_ids": attraction_ids},
            ),
            "replace",
            EVENT_ATTRACTIONS,
            record_level=True,
        )

    async def upsert_event(self, event: NormalizedEvent) -> UpsertResult:
        """Upsert an event with its venue and attractions.

        Steps:
        1. Upsert venue by (source, source_id)
        2. Upsert each named attraction, collecting ids
        3. Upsert the event pointing at the venue
        4. Replace the event's attraction links atomically

        Raises:
            RecordWriteError: a row was rejected; the event should be skipped
            PersistenceError: the store is unreachable
        """
        venue_id = await self.upsert_venue(event.venue)

        attraction_ids: list[str] = []
        skipped = 0
        for attraction in event.attractions:
            if not attraction.name:
                skipped += 1
                continue
            attraction_id = await self.upsert_attraction(attraction)
            if attraction_id not in attraction_ids:
                attraction_ids.append(attraction_id)

        # Events without attractions are valid (festivals, venue announcements)
        event_id = self._upsert_returning_id(EVENTS, event.to_row(venue_id))
        await self.replace_event_attractions(event_id, attraction_ids)

        return UpsertResult(
            event_id=event_id,
            venue_id=venue_id,
            attraction_ids=attraction_ids,
            skipped_attractions=skipped,
        )

    # ==========================================
    # Retention
    # ==========================================

    async def prune_stale_events(self, source: str, today: date | None = None) -> int:
        """Delete events of ``source`` whose start date left the retention window.

        Events without a start date are kept. Links are removed by the
        ``ON DELETE CASCADE`` on event_attractions.

        Returns:
            Number of deleted events
        """
        today = today or date.today()
        oldest, newest = retention_window(
            today,
            self._settings.feed_event_retention_days_past,
            self._settings.feed_event_retention_months_future,
        )

        too_old = self._execute(
            self._client.table(EVENTS)
            .delete()
            .eq("source", source)
            .lt("start_date", oldest.isoformat()),
            "delete",
            EVENTS,
        )
        too_far = self._execute(
            self._client.table(EVENTS)
            .delete()
            .eq("source", source)
            .gt("start_date", newest.isoformat()),
            "delete",
            EVENTS,
        )

        pruned = len(too_old.data or []) + len(too_far.data or [])
        if pruned:
            self.logger.info(
                "events_pruned",
                source=source,
                count=pruned,
                oldest_kept=oldest.isoformat(),
                newest_kept=newest.isoformat(),
            )
        return pruned

    # ==========================================
    # Sync status
    # ==========================================

    async def claim_sync(self, source: str, country: str) -> bool:
        """Atomically mark a pair as running.

        Returns False when another run holds a live claim on the pair. Claims
        older than the configured TTL are considered abandoned and taken over.
        """
        response = self._execute(
            self._client.rpc(
                "claim_feed_sync",
                {
                    "p_source": source,
                    "p_country": country,
                    "p_stale_after_seconds": self._settings.claim_ttl_seconds,
                },
            ),
            "claim",
            FEED_SYNC_STATUS,
        )
        return bool(response.data)

    async def mark_sync_success(
        self,
        source: str,
        country: str,
        events_ingested: int,
        events_skipped: int = 0,
        pages_skipped: int = 0,
    ) -> None:
        now = _utcnow()
        self._execute(
            self._client.table(FEED_SYNC_STATUS).upsert(
                {
                    "source": source,
                    "country": country,
                    "status": SyncStatus.SUCCESS.value,
                    "last_sync_at": now,
                    "last_success_at": now,
                    "events_ingested": events_ingested,
                    "events_skipped": events_skipped,
                    "pages_skipped": pages_skipped,
                    "error_message": None,
                },
                on_conflict="source,country",
            ),
            "upsert",
            FEED_SYNC_STATUS,
        )

    async def mark_sync_error(
        self,
        source: str,
        country: str,
        message: str,
        events_ingested: int = 0,
        events_skipped: int = 0,
        pages_skipped: int = 0,
    ) -> None:
        self._execute(
            self._client.table(FEED_SYNC_STATUS).upsert(
                {
                    "source": source,
                    "country": country,
                    "status": SyncStatus.ERROR.value,
                    "last_sync_at": _utcnow(),
                    "events_ingested": events_ingested,
                    "events_skipped": events_skipped,
                    "pages_skipped": pages_skipped,
                    "error_message": message[:1000],
                },
                on_conflict="source,country",
            ),
            "upsert",
            FEED_SYNC_STATUS,
        )

    async def list_sync_status(self, source: str | None = None) -> list[dict[str, Any]]:
        """Sync status rows, optionally for one source."""
        query = self._client.table(FEED_SYNC_STATUS).select("*")
        if source:
            query = query.eq("source", source)
        response = self._execute(query.order("country"), "select", FEED_SYNC_STATUS)
        return response.data or []

    # ==========================================
    # Read side
    # ==========================================

    async def find_attractions_by_names(self, names: list[str]) -> list[dict[str, Any]]:
        """Attractions whose normalized name equals one of ``names`` (already normalized)."""
        if not names:
            return []
        return self._select_in(ATTRACTIONS, ATTRACTION_MATCH_COLUMNS, "name_normalized", names)

    async def find_attractions_by_aliases(self, names: list[str]) -> list[dict[str, Any]]:
        """Attractions whose normalized alias set contains one of ``names``."""
        if not names:
            return []
        return self._select_paged(
            ATTRACTIONS,
            lambda: self._client.table(ATTRACTIONS)
            .select(ATTRACTION_MATCH_COLUMNS)
            .overlaps("aliases_normalized", names)
            .order("id"),
        )

    async def find_events_for_attractions(
        self,
        attraction_ids: list[str],
        start_date: date,
        end_date: date,
    ) -> list[dict[str, Any]]:
        """Non-test events linked to any of ``attraction_ids`` in the date window.

        Each returned event row carries a ``venue`` dict (or None) and an
        ``attractions`` list. Sorted ascending by start_date.
        """
        if not attraction_ids:
            return []

        links = self._select_in(
            EVENT_ATTRACTIONS,
            "event_id, attraction_id",
            "attraction_id",
            attraction_ids,
            order=LINK_ORDER,
        )
        event_ids = list(dict.fromkeys(link["event_id"] for link in links))
        if not event_ids:
            return []

        events: list[dict[str, Any]] = []
        for i in range(0, len(event_ids), IN_CHUNK_SIZE):
            chunk = event_ids[i : i + IN_CHUNK_SIZE]
            events.extend(
                self._select_paged(
                    EVENTS,
                    lambda: self._client.table(EVENTS)
                    .select("*")
                    .filter("id", "in", in_list(chunk))
                    .eq("is_test", False)
                    .gte("start_date", start_date.isoformat())
                    .lte("start_date", end_date.isoformat())
                    .order("start_date,id"),
                )
            )

        if not events:
            return []

        venues = {
            row["id"]: row
            for row in self._select_in(
                VENUES, "*", "id", dict.fromkeys(e["venue_id"] for e in events)
            )
        }

        found_ids = [e["id"] for e in events]
        all_links = self._select_in(
            EVENT_ATTRACTIONS, "event_id, attraction_id", "event_id", found_ids, order=LINK_ORDER
        )
        attractions = {
            row["id"]: row
            for row in self._select_in(
                ATTRACTIONS,
                "id, name, source, source_id, image_url",
                "id",
                dict.fromkeys(link["attraction_id"] for link in all_links),
            )
        }

        by_event: dict[str, list[dict[str, Any]]] = {}
        for link in all_links:
            attraction = attractions.get(link["attraction_id"])
            if attraction:
                by_event.setdefault(link["event_id"], []).append(attraction)

        for event in events:
            event["venue"] = venues.get(event["venue_id"])
            event["attractions"] = by_event.get(event["id"], [])

        events.sort(key=lambda e: e["start_date"])
        return events


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def in_list(values: Iterable[Any]) -> str:
    """Render values as a PostgREST ``in`` list, each double-quoted.

    postgrest-py's ``in_`` leaves embedded double quotes unescaped, which
    breaks the filter for names like ``"weird al" yankovic``.
    """
    quoted = []
    for value in values:
        text = str(value).replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{text}"')
    return f"({','.join(quoted)})"


_store: CatalogStore | None = None


def get_catalog_store() -> CatalogStore:
    """Get the shared catalog store."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = CatalogStore(
            create_client(settings.supabase_url, settings.supabase_service_role_key),
            settings,
        )
    return _store
