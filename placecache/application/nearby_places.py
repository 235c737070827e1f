"""Nearby-places lookup over the memory tier, the persisted tier and the provider."""

from __future__ import annotations

import datetime as dt
import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, Protocol

from placecache.adapters.normalizer import normalize_features
from placecache.application.usage import UsageRecorder
from placecache.config.settings import CacheSettings
from placecache.domain.cache_key import derive_cache_key
from placecache.domain.enums import ServedFrom
from placecache.domain.exceptions import InvalidInput, NoResult
from placecache.domain.geometry import normalize_radius, validate_coordinates
from placecache.domain.models import NearbyPlacesResult
from placecache.infrastructure.cache import MemoryCache, MemoryCacheEntry
from placecache.infrastructure.logging import StructuredLogger, get_logger
from placecache.infrastructure.single_flight import InFlightRegistry
from placecache.observability.cache_metrics import CacheMetrics
from placecache.persistence.models import PersistedCacheRecord, QuotaStatus, UsageStatistics
from placecache.persistence.repository import PlaceCacheRepository
from placecache.persistence.sqlite_repository import utc_now
from placecache.shared.exceptions import (
    CacheStoreError,
    QuotaExceeded,
    UpstreamError,
    UpstreamUnavailable,
)

_logger = logging.getLogger("placecache.service")


class PlacesFetcher(Protocol):
    provider: str
    endpoint: str

    def fetch(self, lat: float, lng: float, radius: int) -> dict[str, Any]: ...

    def close(self) -> None: ...


class NearbyPlacesService:
    """Answers nearby-places queries from the cheapest tier that can serve them.

    Read path: memory tier, then proximity reuse from the persisted tier, then
    the provider. Provider results are written through to both tiers before
    being returned. Concurrent cold lookups for the same key each reach the
    provider unless ``coalesce_inflight`` is enabled in the settings.
    """

    def __init__(
        self,
        *,
        memory: MemoryCache,
        store: PlaceCacheRepository,
        client: PlacesFetcher,
        usage: UsageRecorder,
        settings: Optional[CacheSettings] = None,
        metrics: Optional[CacheMetrics] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], dt.datetime] = utc_now,
        inflight: Optional[InFlightRegistry] = None,
    ):
        self._memory = memory
        self._store = store
        self._client = client
        self._usage = usage
        self._settings = settings or CacheSettings()
        self._metrics = metrics or CacheMetrics()
        self._log = logger or get_logger()
        self._clock = clock
        if inflight is None and self._settings.coalesce_inflight:
            inflight = InFlightRegistry(wait_timeout=self._settings.upstream_timeout_seconds * 3)
        self._inflight = inflight

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    def _query(self, lat: Any, lng: Any, radius: Any) -> tuple[float, float, int, str]:
        latitude, longitude = validate_coordinates(lat, lng)
        radius_m = normalize_radius(radius, self._settings.default_radius_m)
        return latitude, longitude, radius_m, derive_cache_key(latitude, longitude, radius_m)

    # ── read path ────────────────────────────────────────

    def get_nearby_places(
        self,
        lat: Any,
        lng: Any,
        radius: Any = None,
        force_refresh: bool = False,
    ) -> NearbyPlacesResult:
        latitude, longitude, radius_m, key = self._query(lat, lng, radius)
        started = time.perf_counter()

        if not force_refresh:
            entry = self._memory.get(key)
            if entry is not None:
                result = NearbyPlacesResult(
                    places=list(entry.places),
                    served_from=ServedFrom.MEMORY,
                    as_of=entry.timestamp,
                )
                return self._observe(key, result, started)

            record = self._find_persisted(
                latitude, longitude, radius_m,
                max_age=dt.timedelta(days=self._settings.reuse_max_age_days),
            )
            if record is not None:
                self._memory.set(key, MemoryCacheEntry(key=key, places=list(record.places), timestamp=record.updated_at))
                return self._observe(key, self._from_record(record), started)

        try:
            result = self._fetch_fresh(latitude, longitude, radius_m, key)
        except QuotaExceeded:
            if force_refresh or not self._settings.stale_on_quota:
                raise
            record = self._find_persisted(latitude, longitude, radius_m, max_age=None)
            if record is None:
                raise
            self._log.warning(
                "service",
                "quota exceeded, serving stale persisted record",
                cache_key=key,
                record_id=record.record_id,
                updated_at=record.updated_at.isoformat(),
            )
            return self._observe(key, self._from_record(record, stale=True), started)
        return self._observe(key, result, started)

    def refresh_cache(self, lat: Any, lng: Any, radius: Any = None) -> NearbyPlacesResult:
        """Drop the memory entry and re-fetch from the provider, overwriting both tiers."""
        latitude, longitude, radius_m, key = self._query(lat, lng, radius)
        self._memory.delete(key)
        return self._fetch_fresh(latitude, longitude, radius_m, key)

    def _find_persisted(
        self,
        lat: float,
        lng: float,
        radius: int,
        *,
        max_age: Optional[dt.timedelta],
    ) -> Optional[PersistedCacheRecord]:
        try:
            return self._store.find_reusable(lat, lng, radius, max_age=max_age, now=self._clock())
        except CacheStoreError as exc:
            self._metrics.record_store_error()
            _logger.warning("Persisted cache lookup failed, treating as miss: %s", exc)
            return None

    @staticmethod
    def _from_record(record: PersistedCacheRecord, stale: bool = False) -> NearbyPlacesResult:
        return NearbyPlacesResult(
            places=list(record.places),
            served_from=ServedFrom.PERSISTED,
            as_of=record.updated_at,
            total_results=record.total_results,
            stale=stale,
        )

    def _observe(self, key: str, result: NearbyPlacesResult, started: float) -> NearbyPlacesResult:
        duration_ms = (time.perf_counter() - started) * 1000
        self._metrics.record_lookup(
            served_from=result.served_from.value, latency_ms=duration_ms, stale=result.stale
        )
        self._log.lookup(
            key,
            served_from=result.served_from.value,
            places=len(result.places),
            duration_ms=duration_ms,
            stale=result.stale,
        )
        return result

    # ── upstream path ────────────────────────────────────

    def _fetch_fresh(self, lat: float, lng: float, radius: int, key: str) -> NearbyPlacesResult:
        if self._inflight is None:
            return self._fetch_and_store(lat, lng, radius, key)
        try:
            result, shared = self._inflight.run(key, lambda: self._fetch_and_store(lat, lng, radius, key))
        except FutureTimeoutError:
            exc = UpstreamUnavailable(self._client.provider, "timed out waiting for in-flight fetch")
            self._metrics.record_upstream_error(exc.kind)
            self._log.error("upstream", str(exc), kind=exc.kind, cache_key=key)
            raise exc from None
        if shared:
            self._metrics.record_coalesced()
        return result

    def _fetch_and_store(self, lat: float, lng: float, radius: int, key: str) -> NearbyPlacesResult:
        try:
            raw = self._client.fetch(lat, lng, radius)
        except UpstreamError as exc:
            self._metrics.record_upstream_error(exc.kind)
            self._log.error("upstream", str(exc), kind=exc.kind, status_code=exc.status_code)
            if isinstance(exc, QuotaExceeded):
                self._log.warning(
                    "quota",
                    f"{exc.provider} quota exhausted; operators should review usage",
                    cache_key=key,
                )
            raise

        features = raw.get("features")
        if not isinstance(features, list):
            raise NoResult(
                f"{self._client.provider} returned no feature collection for ({lat}, {lng}, r={radius})"
            )
        places = normalize_features(features, origin=(lat, lng))
        now = self._clock()

        self._memory.set(key, MemoryCacheEntry(key=key, places=places, timestamp=now))
        try:
            self._store.upsert(lat, lng, radius, places, raw, updated_at=now)
        except CacheStoreError as exc:
            self._metrics.record_store_error()
            _logger.warning("Persisted cache write-through failed for %s: %s", key, exc)

        self._warn_if_near_quota()
        return NearbyPlacesResult(places=places, served_from=ServedFrom.UPSTREAM, as_of=now)

    def _warn_if_near_quota(self) -> None:
        try:
            status = self.get_quota_status()
        except CacheStoreError as exc:
            _logger.warning("Quota check skipped: %s", exc)
            return
        if status.alert:
            self._log.warning(
                "quota",
                f"{status.provider} usage at {status.usage_ratio:.0%} of daily quota",
                used_today=status.used_today,
                daily_limit=status.daily_limit,
            )

    # ── maintenance & reporting ──────────────────────────

    def purge_stale_cache(self, max_age_days: Optional[float] = None) -> int:
        days = max_age_days if max_age_days is not None and max_age_days > 0 else self._settings.purge_default_days
        cutoff = self._clock() - dt.timedelta(days=days)
        deleted = self._store.purge_older_than(cutoff)
        _logger.info("Purged %d persisted cache records older than %s days", deleted, days)
        return deleted

    def get_usage_statistics(
        self,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> UsageStatistics:
        if start is not None and end is not None and start > end:
            raise InvalidInput("start must not be after end")
        return self._usage.aggregate(start, end)

    def get_quota_status(self) -> QuotaStatus:
        return self._usage.quota_status(
            self._client.provider,
            self._settings.daily_quota,
            self._settings.quota_alert_ratio,
        )

    def diagnostics(self) -> dict[str, Any]:
        return {
            "provider": self._client.provider,
            "memory": self._memory.stats,
            "lookups": self._metrics.snapshot(),
            "persisted_records": self._store.count(),
            "coalesce_inflight": self._inflight is not None,
            "in_flight": self._inflight.in_flight() if self._inflight is not None else 0,
        }

    def close(self) -> None:
        self._memory.close()
        self._client.close()
        self._store.close()

    def __enter__(self) -> "NearbyPlacesService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = ["NearbyPlacesService", "PlacesFetcher"]
