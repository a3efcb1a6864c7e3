"""Pytest configuration and shared fixtures.

``FakeSupabase`` is an in-memory stand-in for the subset of the Supabase
query builder the catalog store uses. It honours the ``on_conflict`` upsert
keys, NULL comparison semantics, the ON DELETE CASCADE on
event_attractions, and the two Postgres functions from the migration.
"""

import copy
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from concertfeed.config.settings import Settings
from concertfeed.core.catalog_store import CatalogStore

TABLES_WITH_ID = {"venues", "attractions", "events"}


def parse_in_list(criteria: str) -> list[str]:
    """Parse a PostgREST ``(...)`` list with double-quoted, backslash-escaped items."""
    assert criteria.startswith("(") and criteria.endswith(")"), criteria
    body = criteria[1:-1]
    items: list[str] = []
    i = 0
    while i < len(body):
        if body[i] == '"':
            i += 1
            chars = []
            while body[i] != '"':
                if body[i] == "\\":
                    i += 1
                chars.append(body[i])
                i += 1
            items.append("".join(chars))
            i += 1
        else:
            end = body.find(",", i)
            end = len(body) if end == -1 else end
            items.append(body[i:end])
            i = end
        if i < len(body):
            assert body[i] == ",", f"malformed in-list {criteria!r}"
            i += 1
    return items


class FakeResponse:
    def __init__(self, data: Any, count: int | None = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.columns: list[str] | None = None
        self.count_mode: str | None = None
        self.order_by: tuple[list[str], bool] | None = None
        self.row_limit: int | None = None
        self.row_range: tuple[int, int] | None = None
        self.operation = "select"
        self.payload: Any = None
        self.on_conflict: str | None = None

    # --- operations -----------------------------------------------------

    def select(self, columns: str = "*", count: str | None = None) -> "FakeQuery":
        self.operation = "select"
        self.columns = None if columns.strip() == "*" else [c.strip() for c in columns.split(",")]
        self.count_mode = count
        return self

    def upsert(self, row: dict[str, Any], on_conflict: str = "") -> "FakeQuery":
        self.operation = "upsert"
        self.payload = row
        self.on_conflict = on_conflict
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    # --- filters --------------------------------------------------------

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) == value)
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        allowed = list(values)
        self.filters.append(lambda r: r.get(column) in allowed)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) >= value)
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) <= value)
        return self

    def lt(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) < value)
        return self

    def gt(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) > value)
        return self

    def filter(self, column: str, operator: str, criteria: str) -> "FakeQuery":
        assert operator == "in", f"unsupported filter operator {operator}"
        return self.in_(column, parse_in_list(criteria))

    def overlaps(self, column: str, values: list[Any]) -> "FakeQuery":
        wanted = set(values)
        self.filters.append(lambda r: bool(set(r.get(column) or []) & wanted))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = ([c.strip() for c in column.split(",")], desc)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.row_limit = size
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.row_range = (start, end)
        return self

    # --- execution ------------------------------------------------------

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self.operation))
        self.db.maybe_fail(self.table_name, self.operation, self.payload)

        if self.operation == "upsert":
            return FakeResponse([self.db.upsert_row(self.table_name, self.payload, self.on_conflict)])
        if self.operation == "delete":
            return FakeResponse(self.db.delete_rows(self.table_name, self._matches))

        rows = [r for r in self.db.tables[self.table_name] if self._matches(r)]
        total = len(rows)
        if self.order_by:
            columns, desc = self.order_by
            rows.sort(
                key=lambda r: [(r.get(c) is None, r.get(c) or "") for c in columns],
                reverse=desc,
            )
        if self.row_range is not None:
            start, end = self.row_range
            rows = rows[start : end + 1]
        if self.row_limit is not None:
            rows = rows[: self.row_limit]
        if self.db.max_rows is not None:
            rows = rows[: self.db.max_rows]
        if self.columns:
            rows = [{c: r.get(c) for c in self.columns} for r in rows]
        else:
            rows = [copy.deepcopy(r) for r in rows]
        return FakeResponse(rows, count=total if self.count_mode else None)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.name, "rpc"))
        self.db.maybe_fail(self.name, "rpc", self.params)
        handler = getattr(self.db, f"rpc_{self.name}")
        return FakeResponse(handler(**self.params))


class FakeSupabase:
    """Minimal in-memory Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {
            "venues": [],
            "attractions": [],
            "events": [],
            "event_attractions": [],
            "feed_sync_status": [],
        }
        self.calls: list[tuple[str, str]] = []
        # (table_or_function, operation, payload) -> exception to raise, or None
        self.fail: Callable[[str, str, Any], Exception | None] | None = None
        # Server-side cap on rows per response, like PostgREST max-rows
        self.max_rows: int | None = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def maybe_fail(self, target: str, operation: str, payload: Any) -> None:
        if self.fail:
            exc = self.fail(target, operation, payload)
            if exc is not None:
                raise exc

    def upsert_row(self, table: str, row: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        keys = [k.strip() for k in on_conflict.split(",") if k.strip()]
        rows = self.tables[table]
        for existing in rows:
            if keys and all(existing.get(k) == row.get(k) for k in keys):
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)

        new_row = copy.deepcopy(row)
        if table in TABLES_WITH_ID:
            new_row.setdefault("id", str(uuid.uuid4()))
        rows.append(new_row)
        return copy.deepcopy(new_row)

    def delete_rows(self, table: str, predicate: Callable[[dict[str, Any]], bool]) -> list[dict[str, Any]]:
        removed = [r for r in self.tables[table] if predicate(r)]
        self.tables[table] = [r for r in self.tables[table] if not predicate(r)]
        if table == "events" and removed:
            gone = {r["id"] for r in removed}
            self.tables["event_attractions"] = [
                link for link in self.tables["event_attractions"] if link["event_id"] not in gone
            ]
        return removed

    # --- Postgres functions --------------------------------------------

    def rpc_replace_event_attractions(self, p_event_id: str, p_attraction_ids: list[str]) -> None:
        links = [link for link in self.tables["event_attractions"] if link["event_id"] != p_event_id]
        for attraction_id in dict.fromkeys(p_attraction_ids or []):
            links.append({"event_id": p_event_id, "attraction_id": attraction_id})
        self.tables["event_attractions"] = links
        return None

    def rpc_claim_feed_sync(self, p_source: str, p_country: str, p_stale_after_seconds: int) -> bool:
        now = datetime.now(timezone.utc)
        for row in self.tables["feed_sync_status"]:
            if row["source"] == p_source and row["country"] == p_country:
                started = row.get("started_at")
                live = (
                    row.get("status") == "running"
                    and started is not None
                    and started >= now - timedelta(seconds=p_stale_after_seconds)
                )
                if live:
                    return False
                row.update({"status": "running", "started_at": now, "error_message": None})
                return True

        self.tables["feed_sync_status"].append(
            {"source": p_source, "country": p_country, "status": "running", "started_at": now}
        )
        return True

    # --- helpers for assertions ----------------------------------------

    def links_for(self, event_id: str) -> set[str]:
        return {
            link["attraction_id"]
            for link in self.tables["event_attractions"]
            if link["event_id"] == event_id
        }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Factory for Settings that ignores any local .env file."""

    def factory(**overrides: Any) -> Settings:
        values = {
            "SUPABASE_URL": "https://example.supabase.co",
            "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
            "TICKETMASTER_API_KEY": "tm-key",
            "FEED_SYNC_COUNTRIES": "US",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store(fake_db, settings) -> CatalogStore:
    return CatalogStore(fake_db, settings)


@pytest.fixture(autouse=True)
def reset_running_pairs():
    """Make sure no in-process sync guard leaks between tests."""
    from concertfeed.core import sync

    sync._running_pairs.clear()
    yield
    sync._running_pairs.clear()


# =============================================================================
# Raw Ticketmaster payload builders
# =============================================================================


def make_raw_venue(venue_id: str = "KovZpZA7AAEA", **overrides: Any) -> dict[str, Any]:
    venue = {
        "id": venue_id,
        "name": "Madison Square Garden",
        "postalCode": "10001",
        "timezone": "America/New_York",
        "city": {"name": "New York"},
        "state": {"name": "New York", "stateCode": "NY"},
        "country": {"name": "United States Of America", "countryCode": "US"},
        "address": {"line1": "7th Ave & 32nd Street"},
        "location": {"longitude": "-73.99160060", "latitude": "40.75097220"},
    }
    venue.update(overrides)
    return venue


def make_raw_attraction(attraction_id: str, name: str, aliases: list[str] | None = None) -> dict[str, Any]:
    attraction: dict[str, Any] = {
        "id": attraction_id,
        "name": name,
        "images": [{"url": f"https://img.example.com/{attraction_id}.jpg"}],
        "externalLinks": {"homepage": [{"url": "https://example.com"}]},
    }
    if aliases is not None:
        attraction["aliases"] = aliases
    return attraction


def make_raw_event(
    event_id: str = "vvG1zZ9wxyz",
    name: str = "Taylor Swift | The Eras Tour",
    local_date: str | None = "2026-11-20",
    attractions: list[dict[str, Any]] | None = None,
    venue: dict[str, Any] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    if attractions is None:
        attractions = [make_raw_attraction("K8vZ9171ob7", "Taylor Swift", ["T. Swift"])]
    start: dict[str, Any] = {"dateTBD": False, "dateTBA": False}
    if local_date:
        start["localDate"] = local_date
        start["dateTime"] = f"{local_date}T23:30:00Z"

    event: dict[str, Any] = {
        "id": event_id,
        "name": name,
        "type": "event",
        "test": False,
        "url": f"https://www.ticketmaster.com/event/{event_id}",
        "images": [{"url": f"https://img.example.com/{event_id}.jpg", "width": 1024}],
        "sales": {
            "public": {
                "startDateTime": "2026-06-01T14:00:00Z",
                "endDateTime": f"{local_date or '2026-11-20'}T23:00:00Z",
            }
        },
        "dates": {"start": start, "timezone": "America/New_York"},
        "classifications": [
            {
                "primary": True,
                "segment": {"name": "Music"},
                "genre": {"name": "Pop"},
            }
        ],
        "priceRanges": [
            {"type": "standard", "currency": "USD", "min": 49.5, "max": 449.5},
            {"type": "premium", "currency": "USD", "min": 899.0, "max": 1299.0},
        ],
        "_embedded": {
            "venues": [venue if venue is not None else make_raw_venue()],
            "attractions": attractions,
        },
    }
    event.update(overrides)
    return event


def make_feed_payload(events: list[dict[str, Any]], number: int = 0, total_pages: int = 1) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "page": {
            "size": 100,
            "totalElements": total_pages * 100 if total_pages > 1 else len(events),
            "totalPages": total_pages,
            "number": number,
        }
    }
    if events:
        payload["_embedded"] = {"events": events}
    return payload


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    return make_raw_event


@pytest.fixture
def make_venue() -> Callable[..., dict[str, Any]]:
    return make_raw_venue


@pytest.fixture
def make_attraction() -> Callable[..., dict[str, Any]]:
    return make_raw_attraction


@pytest.fixture
def make_page() -> Callable[..., dict[str, Any]]:
    return make_feed_payload
