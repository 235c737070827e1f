"""Coordinate validation and degree/meter conversions."""

from __future__ import annotations

import math
from typing import Any

from placecache.domain.exceptions import InvalidInput

METERS_PER_DEGREE_LAT = 111320.0
EARTH_RADIUS_M = 6371000.0
DEFAULT_RADIUS_M = 1000


def _to_float(value: Any, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"{field} is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidInput(f"{field} must be finite, got {value!r}")
    return number


def validate_coordinates(lat: Any, lng: Any) -> tuple[float, float]:
    latitude = _to_float(lat, "lat")
    longitude = _to_float(lng, "lng")
    if abs(latitude) > 90 or abs(longitude) > 180:
        raise InvalidInput(f"Invalid coordinates provided: ({latitude}, {longitude})")
    return latitude, longitude


def is_valid_coordinate(lat: float, lng: float) -> bool:
    try:
        validate_coordinates(lat, lng)
    except InvalidInput:
        return False
    return True


def normalize_radius(radius: Any, default: int = DEFAULT_RADIUS_M) -> int:
    """Coerce a requested radius to positive integer meters, else the default."""
    if radius is None or isinstance(radius, bool):
        return default
    try:
        value = int(float(radius))
    except (TypeError, ValueError, OverflowError):
        return default
    return value if value > 0 else default


def meters_to_lat_degrees(meters: float) -> float:
    return meters / METERS_PER_DEGREE_LAT


def meters_to_lng_degrees(meters: float, at_lat: float) -> float:
    # Longitude degrees shrink with cos(lat); clamp so the poles do not divide by zero.
    scale = max(math.cos(math.radians(at_lat)), 1e-12)
    return meters / (METERS_PER_DEGREE_LAT * scale)


def bounding_box(lat: float, lng: float, meters: float) -> tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lng, max_lng) of a square window around a point."""
    lat_delta = meters_to_lat_degrees(meters)
    lng_delta = meters_to_lng_degrees(meters, lat)
    return lat - lat_delta, lat + lat_delta, lng - lng_delta, lng + lng_delta


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
