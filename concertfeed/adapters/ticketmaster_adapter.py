"""Ticketmaster Discovery API adapter.

Fetches music events page by page for a country and date window, and maps
Ticketmaster's event/venue/attraction JSON onto catalog models.
"""

import math
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

import httpx
from dateutil import parser as dateutil_parser
from pydantic import ValidationError

from concertfeed.adapters import register_adapter
from concertfeed.adapters.base import PageInfo, PaginationPolicy, RawFeedPage
from concertfeed.core.catalog_model import (
    EventSource,
    NormalizedAttraction,
    NormalizedEvent,
    NormalizedVenue,
)
from concertfeed.core.exceptions import (
    FetchError,
    MissingFieldError,
    NormalizationError,
    TransientFetchError,
)
from concertfeed.logging import get_logger

if TYPE_CHECKING:
    from concertfeed.config.settings import Settings

EVENTS_PATH = "/discovery/v2/events.json"

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


@register_adapter(EventSource.TICKETMASTER.value)
class TicketmasterAdapter:
    """Feed adapter for the Ticketmaster Discovery API."""

    source = EventSource.TICKETMASTER
    pagination = PaginationPolicy(page_size=100, max_results=1000)

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://app.ticketmaster.com",
        request_timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._http_client = http_client
        self.logger = get_logger(f"adapter.{self.source.value.lower()}")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TicketmasterAdapter":
        return cls(
            api_key=settings.ticketmaster_api_key,
            base_url=settings.ticketmaster_api_url,
            request_timeout=settings.feed_fetch_timeout_seconds,
        )

    # ==========================================
    # HTTP Client Management
    # ==========================================

    async def get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.request_timeout),
                headers={"Accept": "application/json"},
                follow_redirects=True,
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "TicketmasterAdapter":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    # ==========================================
    # Fetching
    # ==========================================

    async def fetch_feed(
        self,
        country: str,
        page: int,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> RawFeedPage:
        """Fetch one page of music events.

        Args:
            country: ISO country code (e.g. "US")
            page: Zero-based page index
            start_date: Optional lower bound, ``YYYY-MM-DDTHH:MM:SSZ``
            end_date: Optional upper bound, ``YYYY-MM-DDTHH:MM:SSZ``

        Returns:
            RawFeedPage with the raw event dicts and the page descriptor
        """
        params: dict[str, Any] = {
            "apikey": self.api_key,
            "countryCode": country,
            "page": page,
            "size": self.pagination.page_size,
            "sort": "date,asc",
            "classificationName": "Music",
        }
        if start_date:
            params["startDateTime"] = start_date
        if end_date:
            params["endDateTime"] = end_date

        client = await self.get_http_client()
        try:
            response = await client.get(EVENTS_PATH, params=params)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                f"Request timed out after {self.request_timeout}s",
                url=EVENTS_PATH,
                source=self.source.value,
            ) from e
        except httpx.TransportError as e:
            raise TransientFetchError(
                f"Network error: {e}", url=EVENTS_PATH, source=self.source.value
            ) from e

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientFetchError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=EVENTS_PATH,
                source=self.source.value,
            )
        if response.is_error:
            raise FetchError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=EVENTS_PATH,
                source=self.source.value,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(
                "Malformed JSON in feed response", url=EVENTS_PATH, source=self.source.value
            ) from e

        events = (data.get("_embedded") or {}).get("events") or []
        page_data = data.get("page") or {}

        self.logger.debug(
            "feed_page_fetched",
            country=country,
            page=page,
            events=len(events),
            total_pages=page_data.get("totalPages"),
        )

        return RawFeedPage(
            events=events,
            page=PageInfo(
                number=int(page_data.get("number", page)),
                size=int(page_data.get("size", self.pagination.page_size)),
                total_pages=int(page_data.get("totalPages", 0)),
                total_elements=int(page_data.get("totalElements", 0)),
            ),
        )

    # ==========================================
    # Normalization
    # ==========================================

    def normalize_event(self, raw: dict[str, Any]) -> NormalizedEvent:
        """Map a Ticketmaster event onto a NormalizedEvent.

        Raises:
            NormalizationError: no embedded venue, missing id/name, bad dates
        """
        event_id = raw.get("id")
        if not event_id:
            raise MissingFieldError("id", source=self.source.value)
        if not raw.get("name"):
            raise MissingFieldError("name", record_id=event_id, source=self.source.value)

        embedded = raw.get("_embedded") or {}
        venues = embedded.get("venues") or []
        if not venues:
            raise NormalizationError(
                f"Event {event_id} has no venue", record_id=event_id, source=self.source.value
            )

        dates = raw.get("dates") or {}
        start = dates.get("start") or {}
        public_sale = (raw.get("sales") or {}).get("public") or {}

        # Only the first price range is kept
        price_ranges = raw.get("priceRanges") or []
        first_price = price_ranges[0] if price_ranges else {}

        classifications = raw.get("classifications") or []
        classification = next(
            (c for c in classifications if c.get("primary") is True),
            classifications[0] if classifications else {},
        )

        attractions = []
        for raw_attraction in embedded.get("attractions") or []:
            attraction = self.normalize_attraction(raw_attraction)
            if attraction is not None:
                attractions.append(attraction)

        try:
            return NormalizedEvent(
                source=self.source,
                source_id=event_id,
                name=raw["name"],
                url=raw.get("url"),
                image_url=_first_image_url(raw),
                start_date=_parse_date(start.get("localDate"), event_id),
                start_date_time=_parse_datetime(start.get("dateTime"), event_id),
                timezone=dates.get("timezone"),
                date_tbd=bool(start.get("dateTBD", False)),
                date_tba=bool(start.get("dateTBA", False)),
                onsale_start_date=_parse_datetime(public_sale.get("startDateTime"), event_id),
                onsale_end_date=_parse_datetime(public_sale.get("endDateTime"), event_id),
                min_price=first_price.get("min"),
                max_price=first_price.get("max"),
                currency=first_price.get("currency"),
                genre_name=(classification.get("genre") or {}).get("name"),
                segment_name=(classification.get("segment") or {}).get("name"),
                is_test=bool(raw.get("test", False)),
                venue=self.normalize_venue(venues[0]),
                attractions=attractions,
            )
        except ValidationError as e:
            raise NormalizationError(
                f"Invalid event {event_id}: {e.errors()[0].get('msg')}",
                record_id=event_id,
                source=self.source.value,
            ) from e

    def normalize_attraction(self, raw: dict[str, Any]) -> NormalizedAttraction | None:
        """Map a Ticketmaster attraction; None if it has no id or name."""
        name = (raw.get("name") or "").strip()
        if not name or not raw.get("id"):
            self.logger.debug("attraction_skipped", attraction_id=raw.get("id"))
            return None

        return NormalizedAttraction(
            source=self.source,
            source_id=raw["id"],
            name=name,
            aliases=[a for a in raw.get("aliases") or [] if isinstance(a, str)],
            image_url=_first_image_url(raw),
            external_links=raw.get("externalLinks") or {},
        )

    def normalize_venue(self, raw: dict[str, Any]) -> NormalizedVenue:
        """Map a Ticketmaster venue. Country defaults to US; coordinates may be absent."""
        venue_id = raw.get("id")
        if not venue_id:
            raise MissingFieldError("venue.id", source=self.source.value)
        if not raw.get("name"):
            raise MissingFieldError("venue.name", record_id=venue_id, source=self.source.value)

        location = raw.get("location") or {}
        return NormalizedVenue(
            source=self.source,
            source_id=venue_id,
            name=raw["name"],
            country=(raw.get("country") or {}).get("countryCode") or "US",
            city=(raw.get("city") or {}).get("name"),
            state=(raw.get("state") or {}).get("stateCode"),
            postal_code=raw.get("postalCode"),
            address=(raw.get("address") or {}).get("line1"),
            latitude=_parse_coordinate(location.get("latitude")),
            longitude=_parse_coordinate(location.get("longitude")),
        )


def _first_image_url(raw: dict[str, Any]) -> str | None:
    images = raw.get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


def _parse_coordinate(value: Any) -> float | None:
    """Parse a coordinate string; missing or garbage stays None, not 0."""
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(parsed) else parsed


def _parse_date(value: str | None, record_id: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise NormalizationError(f"Invalid date: {value}", record_id=record_id) from e


def _parse_datetime(value: str | None, record_id: str) -> datetime | None:
    if not value:
        return None
    try:
        return dateutil_parser.isoparse(value)
    except ValueError as e:
        raise NormalizationError(f"Invalid datetime: {value}", record_id=record_id) from e
