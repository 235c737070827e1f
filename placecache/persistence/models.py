"""Persistence-layer record schemas."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field

from placecache.domain.models import PlaceRecord


class PersistedCacheRecord(BaseModel):
    record_id: Optional[int] = None
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius: int
    places: list[PlaceRecord] = Field(default_factory=list)
    total_results: int = 0
    raw_response: dict[str, Any] = Field(default_factory=dict)
    created_at: dt.datetime
    updated_at: dt.datetime


class UsageRecord(BaseModel):
    provider: str
    endpoint: str
    success: bool
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    timestamp: dt.datetime


class UsageBucket(BaseModel):
    provider: str
    endpoint: str
    date: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0


class UsageTotals(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0


class UsageStatistics(BaseModel):
    per_provider_per_day: list[UsageBucket] = Field(default_factory=list)
    overall: UsageTotals = Field(default_factory=UsageTotals)


class QuotaStatus(BaseModel):
    provider: str
    used_today: int = 0
    daily_limit: int
    usage_ratio: float = 0.0
    alert: bool = False


__all__ = [
    "PersistedCacheRecord",
    "QuotaStatus",
    "UsageBucket",
    "UsageRecord",
    "UsageStatistics",
    "UsageTotals",
]
