"""Concert routes - upcoming concerts for a list of artists near a point."""

from datetime import date

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from concertfeed.core.geo_matcher import ConcertQuery, ConcertResponse, GeoMatcher
from concertfeed.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

DEFAULT_WINDOW_MONTHS = 6


def get_geo_matcher() -> GeoMatcher:
    return GeoMatcher()


@router.get("", response_model=ConcertResponse)
async def find_concerts(
    artist: list[str] = Query(..., description="Artist name; repeat for several artists"),
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(50.0, gt=0),
    start_date: date | None = Query(None, description="Defaults to today"),
    end_date: date | None = Query(None, description="Defaults to six months after start_date"),
    limit: int = Query(25, ge=1, le=100),
    matcher: GeoMatcher = Depends(get_geo_matcher),
) -> ConcertResponse:
    """Concerts by the given artists within ``radius_km``, soonest first."""
    start = start_date or date.today()
    end = end_date or start + relativedelta(months=DEFAULT_WINDOW_MONTHS)

    try:
        query = ConcertQuery(
            artists=artist,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            start_date=start,
            end_date=end,
            limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        )

    return await matcher.find_concerts(query)
