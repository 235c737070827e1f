"""Runtime configuration helpers."""

from placecache.config.settings import CacheSettings, load_cache_settings

__all__ = ["CacheSettings", "load_cache_settings"]
