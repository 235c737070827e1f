"""Pydantic domain models."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from placecache.domain.enums import ServedFrom


class PlaceRecord(BaseModel):
    """Provider-independent place, immutable once normalized."""

    model_config = ConfigDict(frozen=True)

    place_id: str
    name: str
    address: str
    categories: tuple[str, ...] = ()
    lat: float
    lng: float
    photos: tuple[str, ...] = ()
    rating: Optional[float] = None
    rating_count: int = 0
    website: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Any = None
    distance: Optional[float] = None
    datasource: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_coordinates(self) -> "PlaceRecord":
        if abs(self.lat) > 90 or abs(self.lng) > 180:
            raise ValueError(f"coordinates out of range: ({self.lat}, {self.lng})")
        return self


class NearbyPlacesResult(BaseModel):
    places: list[PlaceRecord] = Field(default_factory=list)
    served_from: ServedFrom
    as_of: dt.datetime
    total_results: int = 0
    stale: bool = False

    @model_validator(mode="after")
    def _fill_total(self) -> "NearbyPlacesResult":
        if not self.total_results:
            self.total_results = len(self.places)
        return self
