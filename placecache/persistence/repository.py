"""Persistence repository interfaces and factory."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from placecache.config.settings import CacheSettings
from placecache.domain.models import PlaceRecord
from placecache.persistence.models import PersistedCacheRecord, UsageRecord, UsageStatistics
from placecache.persistence.sqlite_repository import SQLitePlaceCacheRepository, SQLiteUsageRepository


class PlaceCacheRepository(Protocol):
    backend: str

    def find_reusable(
        self,
        lat: float,
        lng: float,
        radius: int,
        *,
        max_age: Optional[dt.timedelta] = ...,
        now: Optional[dt.datetime] = None,
    ) -> Optional[PersistedCacheRecord]: ...

    def upsert(
        self,
        lat: float,
        lng: float,
        radius: int,
        places: Sequence[PlaceRecord],
        raw_response: dict[str, Any],
        *,
        updated_at: Optional[dt.datetime] = None,
    ) -> PersistedCacheRecord: ...

    def purge_older_than(self, cutoff: dt.datetime) -> int: ...

    def count(self) -> int: ...

    def close(self) -> None: ...


class UsageRepository(Protocol):
    backend: str

    def append(self, record: UsageRecord) -> None: ...

    def aggregate(
        self,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> UsageStatistics: ...

    def count(
        self,
        *,
        provider: Optional[str] = None,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> int: ...


def build_repositories(
    settings: CacheSettings,
    db_path: Optional[str | Path] = None,
) -> tuple[SQLitePlaceCacheRepository, SQLiteUsageRepository]:
    path = Path(db_path) if db_path is not None else settings.db_path
    place_repo = SQLitePlaceCacheRepository(
        path,
        tolerance_ratio=settings.reuse_tolerance_ratio,
        coverage_ratio=settings.reuse_coverage_ratio,
        write_match_degrees=settings.write_match_degrees,
    )
    return place_repo, SQLiteUsageRepository(path)


__all__ = ["PlaceCacheRepository", "UsageRepository", "build_repositories"]
