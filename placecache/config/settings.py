"""Runtime settings for the nearby-places cache, resolved from the environment."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}
_DEFAULT_DB_PATH = Path("data") / "placecache.sqlite3"


def _is_enabled(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class CacheSettings(BaseModel):
    base_url: str = Field(default="https://api.geoapify.com/v2/places")
    categories: str = Field(
        default="tourism,accommodation,catering,entertainment,leisure,commercial,building"
    )
    result_limit: int = Field(default=50, ge=1, le=500)
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)
    upstream_max_retries: int = Field(default=0, ge=0, le=5)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    db_path: Path = Field(default=_DEFAULT_DB_PATH)
    default_radius_m: int = Field(default=1000, gt=0)
    memory_ttl_seconds: float = Field(default=3600.0, gt=0)
    memory_sweep_seconds: float = Field(default=600.0, gt=0)
    memory_max_entries: int = Field(default=1000, ge=1)
    reuse_tolerance_ratio: float = Field(default=0.1, ge=0)
    reuse_coverage_ratio: float = Field(default=0.8, ge=0)
    reuse_max_age_days: float = Field(default=7.0, gt=0)
    write_match_degrees: float = Field(default=0.001, ge=0)
    purge_default_days: int = Field(default=30, ge=1)
    daily_quota: int = Field(default=3000, ge=1)
    quota_alert_ratio: float = Field(default=0.8, gt=0, le=1)
    coalesce_inflight: bool = Field(default=False)
    stale_on_quota: bool = Field(default=True)


def load_cache_settings() -> CacheSettings:
    db_raw = os.getenv("PLACES_CACHE_DB", "").strip()
    return CacheSettings(
        base_url=os.getenv("GEOAPIFY_PLACES_URL", "").strip() or CacheSettings.model_fields["base_url"].default,
        upstream_timeout_seconds=_env_float("PLACES_UPSTREAM_TIMEOUT_SECONDS", 10.0),
        upstream_max_retries=_env_int("PLACES_UPSTREAM_MAX_RETRIES", 0),
        retry_backoff_seconds=_env_float("PLACES_UPSTREAM_BACKOFF_SECONDS", 1.0),
        db_path=Path(db_raw) if db_raw else _DEFAULT_DB_PATH,
        memory_ttl_seconds=_env_float("PLACES_MEMORY_TTL_SECONDS", 3600.0),
        memory_sweep_seconds=_env_float("PLACES_MEMORY_SWEEP_SECONDS", 600.0),
        memory_max_entries=_env_int("PLACES_MEMORY_MAX_ENTRIES", 1000),
        reuse_tolerance_ratio=_env_float("PLACES_REUSE_TOLERANCE_RATIO", 0.1),
        reuse_coverage_ratio=_env_float("PLACES_REUSE_COVERAGE_RATIO", 0.8),
        reuse_max_age_days=_env_float("PLACES_REUSE_MAX_AGE_DAYS", 7.0),
        purge_default_days=_env_int("PLACES_PURGE_DEFAULT_DAYS", 30),
        daily_quota=_env_int("PLACES_DAILY_QUOTA", 3000),
        quota_alert_ratio=_env_float("PLACES_QUOTA_ALERT_RATIO", 0.8),
        coalesce_inflight=_is_enabled(os.getenv("PLACES_COALESCE_INFLIGHT")),
        stale_on_quota=_is_enabled(os.getenv("PLACES_STALE_ON_QUOTA"), default=True),
    )


__all__ = ["CacheSettings", "load_cache_settings"]
