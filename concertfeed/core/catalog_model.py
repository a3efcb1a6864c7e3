"""Pydantic models for catalog records that map to the Supabase schema."""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from concertfeed.utils.text import normalize_name


class EventSource(str, Enum):
    """Provider a catalog record was ingested from.

    Values are stored verbatim in the ``source`` column of every catalog table.
    """

    TICKETMASTER = "TICKETMASTER"


class SyncStatus(str, Enum):
    """Values of ``feed_sync_status.status``."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class NormalizedVenue(BaseModel):
    """Venue as produced by an adapter, keyed by (source, source_id)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source: EventSource
    source_id: str = Field(min_length=1)
    name: str
    country: str = "US"
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    address: str | None = None
    # Absent coordinates stay None; 0.0 is a real place
    latitude: float | None = None
    longitude: float | None = None

    def to_row(self) -> dict[str, Any]:
        """Columns written on upsert."""
        return {
            "source": self.source.value,
            "source_id": self.source_id,
            "name": self.name,
            "country": self.country,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class NormalizedAttraction(BaseModel):
    """Performer as produced by an adapter."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source: EventSource
    source_id: str = Field(min_length=1)
    name: str
    aliases: list[str] = Field(default_factory=list)
    image_url: str | None = None
    external_links: dict[str, Any] = Field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        """Columns written on upsert, including the normalized match keys."""
        return {
            "source": self.source.value,
            "source_id": self.source_id,
            "name": self.name,
            "name_normalized": normalize_name(self.name),
            "aliases": list(self.aliases),
            "aliases_normalized": [normalize_name(a) for a in self.aliases if a and a.strip()],
            "image_url": self.image_url,
            "external_links": self.external_links,
        }


class NormalizedEvent(BaseModel):
    """Concert occurrence with its embedded venue and attractions."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source: EventSource
    source_id: str = Field(min_length=1)
    name: str
    url: str | None = None
    image_url: str | None = None

    start_date: date | None = None
    start_date_time: datetime | None = None
    timezone: str | None = None
    date_tbd: bool = False
    date_tba: bool = False

    onsale_start_date: datetime | None = None
    onsale_end_date: datetime | None = None

    # From the first price range only
    min_price: float | None = None
    max_price: float | None = None
    currency: str | None = None

    genre_name: str | None = None
    segment_name: str | None = None

    is_test: bool = False

    venue: NormalizedVenue
    attractions: list[NormalizedAttraction] = Field(default_factory=list)

    def to_row(self, venue_id: str) -> dict[str, Any]:
        """Columns written on upsert. Dates are serialized for PostgREST."""
        return {
            "source": self.source.value,
            "source_id": self.source_id,
            "name": self.name,
            "url": self.url,
            "image_url": self.image_url,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "start_date_time": _iso(self.start_date_time),
            "timezone": self.timezone,
            "date_tbd": self.date_tbd,
            "date_tba": self.date_tba,
            "onsale_start_date": _iso(self.onsale_start_date),
            "onsale_end_date": _iso(self.onsale_end_date),
            "min_price": self.min_price,
            "max_price": self.max_price,
            "currency": self.currency,
            "genre_name": self.genre_name,
            "segment_name": self.segment_name,
            "is_test": self.is_test,
            "venue_id": venue_id,
        }


class UpsertResult(BaseModel):
    """Ids touched by one ``upsert_event`` call."""

    event_id: str
    venue_id: str
    attraction_ids: list[str] = Field(default_factory=list)
    skipped_attractions: int = 0


class ResolvedArtist(BaseModel):
    """An attraction matched from a free-text artist name."""

    id: str
    name: str
    source: str
    source_id: str


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
