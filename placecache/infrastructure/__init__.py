"""Infrastructure services and cross-cutting utilities."""

from placecache.infrastructure.cache import MemoryCache, MemoryCacheEntry
from placecache.infrastructure.logging import StructuredLogger, get_logger
from placecache.infrastructure.single_flight import InFlightRegistry

__all__ = [
    "InFlightRegistry",
    "MemoryCache",
    "MemoryCacheEntry",
    "StructuredLogger",
    "get_logger",
]
