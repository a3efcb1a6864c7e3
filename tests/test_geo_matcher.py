"""Tests for distance filtering and concert matching."""

from datetime import date

import pytest
from pydantic import ValidationError

from concertfeed.adapters.ticketmaster_adapter import TicketmasterAdapter
from concertfeed.core.geo_matcher import ConcertQuery, GeoMatcher, filter_by_distance
from concertfeed.utils.geo import haversine_km

# Times Square
ORIGIN = (40.7580, -73.9855)
MSG = (40.7509722, -73.9916006)


def event_at(event_id: str, lat, lng) -> dict:
    return {"id": event_id, "venue": {"id": f"v-{event_id}", "latitude": lat, "longitude": lng}}


def query(**overrides) -> ConcertQuery:
    values = {
        "artists": ["Muse"],
        "lat": ORIGIN[0],
        "lng": ORIGIN[1],
        "radius_km": 50,
        "start_date": date(2026, 3, 1),
        "end_date": date(2026, 12, 31),
    }
    values.update(overrides)
    return ConcertQuery(**values)


class TestFilterByDistance:

    def test_exact_radius_is_included(self):
        radius = haversine_km(ORIGIN[0], ORIGIN[1], *MSG)

        kept = filter_by_distance([event_at("e1", *MSG)], ORIGIN[0], ORIGIN[1], radius)

        assert [e["id"] for e, _ in kept] == ["e1"]

    def test_just_outside_radius_is_excluded(self):
        distance = haversine_km(ORIGIN[0], ORIGIN[1], *MSG)

        kept = filter_by_distance([event_at("e1", *MSG)], ORIGIN[0], ORIGIN[1], distance - 0.1)

        assert kept == []

    def test_missing_coordinates_are_dropped(self):
        events = [
            event_at("no-lat", None, -73.99),
            event_at("no-lng", 40.75, None),
            {"id": "no-venue", "venue": None},
            event_at("ok", *MSG),
        ]

        kept = filter_by_distance(events, ORIGIN[0], ORIGIN[1], 10)

        assert [e["id"] for e, _ in kept] == ["ok"]

    def test_order_is_preserved(self):
        events = [event_at("far", 40.85, -73.90), event_at("near", *MSG)]

        kept = filter_by_distance(events, ORIGIN[0], ORIGIN[1], 50)

        assert [e["id"] for e, _ in kept] == ["far", "near"]


class TestConcertQuery:

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            query(start_date=date(2026, 5, 1), end_date=date(2026, 4, 30))

    @pytest.mark.parametrize("field,value", [
        ("lat", 91),
        ("lng", -181),
        ("radius_km", 0),
        ("limit", 0),
        ("limit", 101),
    ])
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            query(**{field: value})


class TestGeoMatcher:

    @pytest.fixture
    def adapter(self):
        return TicketmasterAdapter(api_key="k")

    async def ingest(self, store, adapter, make_event, event_id, local_date, venue, attractions):
        await store.upsert_event(adapter.normalize_event(
            make_event(event_id=event_id, local_date=local_date, venue=venue, attractions=attractions)
        ))

    @pytest.mark.asyncio
    async def test_finds_nearby_concerts(self, store, adapter, make_event, make_venue, make_attraction):
        muse = make_attraction("A1", "Muse")
        opener = make_attraction("A2", "Royal Blood")
        la_venue = make_venue(
            "LA1", name="Crypto.com Arena",
            location={"latitude": "34.0430", "longitude": "-118.2673"},
        )
        unplaced = make_venue("NOLOC", name="Secret Show", location=None)

        await self.ingest(store, adapter, make_event, "nyc-2", "2026-06-02", make_venue(), [muse])
        await self.ingest(store, adapter, make_event, "nyc-1", "2026-05-01", make_venue(), [muse, opener])
        await self.ingest(store, adapter, make_event, "la", "2026-05-15", la_venue, [muse])
        await self.ingest(store, adapter, make_event, "secret", "2026-05-20", unplaced, [muse])
        await self.ingest(store, adapter, make_event, "past", "2026-01-10", make_venue(), [muse])

        response = await GeoMatcher(store).find_concerts(query(artists=["muse", "Unknown Band"]))

        assert response.artists_queried == 2
        assert response.artists_matched == 1
        assert response.events_found == 2
        assert [e.name for e in response.events] == ["Taylor Swift | The Eras Tour"] * 2
        first = response.events[0]
        assert first.start_date == date(2026, 5, 1)
        assert first.venue.name == "Madison Square Garden"
        assert first.distance_km == round(haversine_km(ORIGIN[0], ORIGIN[1], *MSG), 1)
        assert {(a.name, a.matched) for a in first.artists} == {("Muse", True), ("Royal Blood", False)}
        assert response.message is None

    @pytest.mark.asyncio
    async def test_limit_applied_after_distance_filter(self, store, adapter, make_event, make_venue, make_attraction):
        muse = make_attraction("A1", "Muse")
        far = make_venue("FAR", location={"latitude": "34.0430", "longitude": "-118.2673"})
        await self.ingest(store, adapter, make_event, "far-1", "2026-04-01", far, [muse])
        await self.ingest(store, adapter, make_event, "far-2", "2026-04-02", far, [muse])
        for day in (10, 11, 12):
            await self.ingest(store, adapter, make_event, f"near-{day}", f"2026-04-{day}", make_venue(), [muse])

        response = await GeoMatcher(store).find_concerts(query(limit=2))

        assert response.events_found == 3
        assert [e.start_date.day for e in response.events] == [10, 11]

    @pytest.mark.asyncio
    async def test_no_artists_resolved(self, store):
        response = await GeoMatcher(store).find_concerts(query(artists=["Nobody"]))

        assert response.events == []
        assert response.artists_queried == 1
        assert response.artists_matched == 0
        assert response.message

    @pytest.mark.asyncio
    async def test_nothing_within_radius(self, store, adapter, make_event, make_attraction):
        await self.ingest(store, adapter, make_event, "nyc", "2026-05-01", None, [make_attraction("A1", "Muse")])

        response = await GeoMatcher(store).find_concerts(query(lat=51.5074, lng=-0.1278))

        assert response.artists_matched == 1
        assert response.events == []
        assert response.events_found == 0
        assert "radius" in response.message
