"""Observability utilities."""

from placecache.observability.cache_metrics import CacheMetrics

__all__ = ["CacheMetrics"]
