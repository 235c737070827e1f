"""Persistence package exports."""

from placecache.persistence.migration_runner import SchemaError, schema_version, upgrade_schema
from placecache.persistence.models import (
    PersistedCacheRecord,
    QuotaStatus,
    UsageBucket,
    UsageRecord,
    UsageStatistics,
    UsageTotals,
)
from placecache.persistence.repository import PlaceCacheRepository, UsageRepository, build_repositories
from placecache.persistence.sqlite_repository import SQLitePlaceCacheRepository, SQLiteUsageRepository

__all__ = [
    "PersistedCacheRecord",
    "PlaceCacheRepository",
    "QuotaStatus",
    "SQLitePlaceCacheRepository",
    "SQLiteUsageRepository",
    "UsageBucket",
    "UsageRecord",
    "UsageRepository",
    "UsageStatistics",
    "UsageTotals",
    "SchemaError",
    "build_repositories",
    "schema_version",
    "upgrade_schema",
]
