"""Domain package exports."""

from placecache.domain.cache_key import derive_cache_key
from placecache.domain.enums import ServedFrom
from placecache.domain.exceptions import DomainError, InvalidInput, NoResult
from placecache.domain.geometry import (
    DEFAULT_RADIUS_M,
    METERS_PER_DEGREE_LAT,
    bounding_box,
    haversine_m,
    normalize_radius,
    validate_coordinates,
)
from placecache.domain.models import NearbyPlacesResult, PlaceRecord

__all__ = [
    "DEFAULT_RADIUS_M",
    "DomainError",
    "InvalidInput",
    "METERS_PER_DEGREE_LAT",
    "NearbyPlacesResult",
    "NoResult",
    "PlaceRecord",
    "ServedFrom",
    "bounding_box",
    "derive_cache_key",
    "haversine_m",
    "normalize_radius",
    "validate_coordinates",
]
