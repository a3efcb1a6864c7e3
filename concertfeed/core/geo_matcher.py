"""Concert recommendations: resolved artists, date window and distance filter."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from concertfeed.core.artist_resolver import ArtistResolver
from concertfeed.core.catalog_store import CatalogStore, get_catalog_store
from concertfeed.logging import get_logger
from concertfeed.utils.geo import has_coordinates, haversine_km
from concertfeed.utils.text import normalize_names

logger = get_logger(__name__)


class ConcertQuery(BaseModel):
    """Caller input for a concert search."""

    artists: list[str] = Field(default_factory=list)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius_km: float = Field(gt=0)
    start_date: date
    end_date: date
    limit: int = Field(default=25, ge=1, le=100)

    @model_validator(mode="after")
    def _check_window(self) -> "ConcertQuery":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ConcertVenue(BaseModel):
    id: str
    name: str
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None
    latitude: float
    longitude: float


class ConcertArtist(BaseModel):
    id: str
    name: str
    image_url: str | None = None
    matched: bool = False


class ConcertEvent(BaseModel):
    id: str
    name: str
    url: str | None = None
    image_url: str | None = None
    start_date: date
    start_date_time: datetime | None = None
    timezone: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    currency: str | None = None
    genre_name: str | None = None
    distance_km: float
    venue: ConcertVenue
    artists: list[ConcertArtist] = Field(default_factory=list)


class ConcertResponse(BaseModel):
    """Ranked concerts plus coverage metadata."""

    events: list[ConcertEvent] = Field(default_factory=list)
    artists_queried: int = 0
    artists_matched: int = 0
    events_found: int = 0
    message: str | None = None


def filter_by_distance(
    events: list[dict[str, Any]],
    lat: float,
    lng: float,
    radius_km: float,
) -> list[tuple[dict[str, Any], float]]:
    """Keep events whose venue lies within ``radius_km`` of (lat, lng).

    Venues without coordinates cannot be placed and are dropped. The boundary
    is inclusive and compared on the unrounded distance. Input order is kept.
    """
    within: list[tuple[dict[str, Any], float]] = []
    for event in events:
        venue = event.get("venue") or {}
        v_lat, v_lng = venue.get("latitude"), venue.get("longitude")
        if not has_coordinates(v_lat, v_lng):
            continue
        distance = haversine_km(lat, lng, float(v_lat), float(v_lng))
        if distance <= radius_km:
            within.append((event, distance))
    return within


class GeoMatcher:
    """Turns a ConcertQuery into a ConcertResponse."""

    def __init__(
        self,
        store: CatalogStore | None = None,
        resolver: ArtistResolver | None = None,
    ) -> None:
        self.store = store or get_catalog_store()
        self.resolver = resolver or ArtistResolver(self.store)

    async def find_concerts(self, query: ConcertQuery) -> ConcertResponse:
        queried = len(normalize_names(query.artists))
        resolved = await self.resolver.resolve_artist_names(query.artists)

        if not resolved:
            return ConcertResponse(
                artists_queried=queried,
                message="None of the requested artists are in the catalog",
            )

        matched_ids = {artist.id for artist in resolved}
        candidates = await self.store.find_events_for_attractions(
            list(matched_ids), query.start_date, query.end_date
        )
        nearby = filter_by_distance(candidates, query.lat, query.lng, query.radius_km)

        logger.info(
            "concerts_matched",
            artists_queried=queried,
            artists_matched=len(resolved),
            candidates=len(candidates),
            within_radius=len(nearby),
        )

        events = [
            _to_concert_event(event, distance, matched_ids)
            for event, distance in nearby[: query.limit]
        ]
        message = None
        if not events:
            message = "No upcoming concerts for these artists within the search radius"

        return ConcertResponse(
            events=events,
            artists_queried=queried,
            artists_matched=len(resolved),
            events_found=len(nearby),
            message=message,
        )


def _to_concert_event(
    event: dict[str, Any],
    distance: float,
    matched_ids: set[str],
) -> ConcertEvent:
    venue = event["venue"]
    return ConcertEvent(
        id=event["id"],
        name=event["name"],
        url=event.get("url"),
        image_url=event.get("image_url"),
        start_date=event["start_date"],
        start_date_time=event.get("start_date_time"),
        timezone=event.get("timezone"),
        min_price=event.get("min_price"),
        max_price=event.get("max_price"),
        currency=event.get("currency"),
        genre_name=event.get("genre_name"),
        distance_km=round(distance, 1),
        venue=ConcertVenue(
            id=venue["id"],
            name=venue["name"],
            city=venue.get("city"),
            state=venue.get("state"),
            country=venue.get("country"),
            address=venue.get("address"),
            latitude=venue["latitude"],
            longitude=venue["longitude"],
        ),
        artists=[
            ConcertArtist(
                id=a["id"],
                name=a["name"],
                image_url=a.get("image_url"),
                matched=a["id"] in matched_ids,
            )
            for a in event.get("attractions", [])
        ],
    )
