"""Utility functions for concertfeed."""

from concertfeed.utils.date_ranges import DateBatch, monthly_batches, retention_window
from concertfeed.utils.geo import EARTH_RADIUS_KM, has_coordinates, haversine_km
from concertfeed.utils.text import normalize_name, normalize_names

__all__ = [
    "DateBatch",
    "monthly_batches",
    "retention_window",
    "EARTH_RADIUS_KM",
    "has_coordinates",
    "haversine_km",
    "normalize_name",
    "normalize_names",
]
