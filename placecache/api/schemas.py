"""API request/response models."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field

from placecache.domain.models import NearbyPlacesResult, PlaceRecord
from placecache.persistence.models import QuotaStatus, UsageStatistics


class HealthResponse(BaseModel):
    status: str = "ok"


class NearbyPlacesResponse(BaseModel):
    success: bool = True
    data: list[PlaceRecord] = Field(default_factory=list)
    served_from: str = Field(description="memory / persisted / upstream")
    cached: bool = Field(description="True when no provider call was made")
    stale: bool = Field(default=False, description="Served past the reuse ceiling because of a quota error")
    as_of: dt.datetime
    total_results: int = 0
    message: str = ""

    @classmethod
    def from_result(cls, result: NearbyPlacesResult, message: str = "") -> "NearbyPlacesResponse":
        return cls(
            data=result.places,
            served_from=result.served_from.value,
            cached=result.served_from.value != "upstream",
            stale=result.stale,
            as_of=result.as_of,
            total_results=result.total_results,
            message=message,
        )


class UsageStatsResponse(BaseModel):
    success: bool = True
    stats: UsageStatistics
    quota: Optional[QuotaStatus] = None


class ClearCacheResponse(BaseModel):
    success: bool = True
    message: str
    deleted_count: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str = "internal_error"
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
