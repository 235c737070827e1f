"""Map Geoapify GeoJSON features onto ``PlaceRecord``."""

from __future__ import annotations

import hashlib
import json
import logging
import math
from typing import Any, Iterable, Optional

from placecache.domain.geometry import haversine_m, is_valid_coordinate
from placecache.domain.models import PlaceRecord

_logger = logging.getLogger("placecache.normalizer")

UNNAMED_PLACE = "Unnamed Place"
NO_ADDRESS = "Address not available"


def _safe_str(val: object, default: str = "") -> str:
    """Providers send [] or null for empty text fields; collapse them to ``default``."""
    if isinstance(val, str):
        return val.strip() or default
    if val is None or (isinstance(val, (list, dict)) and len(val) == 0):
        return default
    return str(val)


def _optional_str(val: object) -> Optional[str]:
    text = _safe_str(val)
    return text or None


def _optional_float(val: object) -> Optional[float]:
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(val)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _count(val: object) -> int:
    number = _optional_float(val)
    return max(0, int(number)) if number is not None else 0


def _coordinates(feature: dict[str, Any], props: dict[str, Any]) -> tuple[float, float]:
    geometry = feature.get("geometry")
    if not isinstance(geometry, dict):
        geometry = {}
    coords = geometry.get("coordinates")
    if geometry.get("type", "Point") == "Point" and isinstance(coords, (list, tuple)) and len(coords) >= 2:
        lng, lat = _optional_float(coords[0]), _optional_float(coords[1])  # GeoJSON order is [lng, lat]
    else:
        lat, lng = _optional_float(props.get("lat")), _optional_float(props.get("lon"))
    if lat is None or lng is None or not is_valid_coordinate(lat, lng):
        raise ValueError(f"feature has no usable coordinates: {coords or (props.get('lat'), props.get('lon'))}")
    return lat, lng


def _fallback_place_id(name: str, lat: float, lng: float) -> str:
    raw = json.dumps([name, round(lat, 6), round(lng, 6)], ensure_ascii=False)
    return "anon_" + hashlib.md5(raw.encode()).hexdigest()[:16]


def normalize_feature(
    feature: dict[str, Any],
    *,
    origin: Optional[tuple[float, float]] = None,
) -> PlaceRecord:
    """Build a ``PlaceRecord`` from one provider feature.

    Missing optional fields become ``None`` or empty defaults. ``origin`` is
    the query center, used for ``distance`` when the provider did not send
    one. The provider's ``properties`` are kept verbatim in ``raw``.
    """
    props = feature.get("properties") or {}
    if not isinstance(props, dict):
        raise ValueError("feature properties must be an object")
    lat, lng = _coordinates(feature, props)

    name = _safe_str(props.get("name"), UNNAMED_PLACE)
    address = _safe_str(props.get("formatted")) or _safe_str(props.get("address_line1"), NO_ADDRESS)
    contact = props.get("contact") if isinstance(props.get("contact"), dict) else {}
    datasource = props.get("datasource") if isinstance(props.get("datasource"), dict) else {}
    raw_source = datasource.get("raw") if isinstance(datasource.get("raw"), dict) else {}

    categories = props.get("categories") or []
    if isinstance(categories, str):
        categories = [categories]
    image = _safe_str(props.get("image"))

    distance = _optional_float(props.get("distance"))
    if distance is None and origin is not None:
        distance = round(haversine_m(origin[0], origin[1], lat, lng), 1)

    return PlaceRecord(
        place_id=_safe_str(props.get("place_id")) or _fallback_place_id(name, lat, lng),
        name=name,
        address=address,
        categories=tuple(str(c) for c in categories),
        lat=lat,
        lng=lng,
        photos=(image,) if image else (),
        rating=_optional_float(props.get("rating")),
        rating_count=_count(props.get("user_ratings_total")),
        website=_optional_str(props.get("website") or contact.get("website")),
        phone=_optional_str(props.get("phone") or contact.get("phone")),
        opening_hours=props.get("opening_hours") or raw_source.get("opening_hours"),
        distance=distance,
        datasource=datasource,
        raw=props,
    )


def normalize_features(
    features: Iterable[Any],
    *,
    origin: Optional[tuple[float, float]] = None,
) -> list[PlaceRecord]:
    """Normalize a feature collection, skipping features that cannot be placed."""
    places: list[PlaceRecord] = []
    for idx, feature in enumerate(features):
        if not isinstance(feature, dict):
            _logger.warning("Skipping feature %d: not an object", idx)
            continue
        try:
            places.append(normalize_feature(feature, origin=origin))
        except ValueError as exc:
            _logger.warning("Skipping feature %d: %s", idx, exc)
    return places
