"""Dependency wiring for the nearby-places service."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from placecache.adapters.geoapify import GeoapifyPlacesClient
from placecache.application.nearby_places import NearbyPlacesService
from placecache.application.usage import UsageRecorder
from placecache.config.settings import CacheSettings, load_cache_settings
from placecache.infrastructure.cache import MemoryCache
from placecache.infrastructure.logging import StructuredLogger, get_logger
from placecache.persistence.repository import build_repositories
from placecache.security.key_manager import KeyManager, get_key_manager


def make_nearby_places_service(
    settings: Optional[CacheSettings] = None,
    *,
    db_path: Optional[str | Path] = None,
    transport: Optional[httpx.BaseTransport] = None,
    key_manager: Optional[KeyManager] = None,
    logger: Optional[StructuredLogger] = None,
    start_sweeper: bool = True,
) -> NearbyPlacesService:
    """Build a service with its own memory tier, SQLite stores and HTTP client.

    The caller owns the returned service and must ``close()`` it.
    """
    settings = settings or load_cache_settings()
    logger = logger or get_logger()
    place_repo, usage_repo = build_repositories(settings, db_path)
    usage = UsageRecorder(usage_repo)

    client = GeoapifyPlacesClient(
        usage,
        base_url=settings.base_url,
        categories=settings.categories,
        limit=settings.result_limit,
        timeout=settings.upstream_timeout_seconds,
        max_retries=settings.upstream_max_retries,
        backoff_seconds=settings.retry_backoff_seconds,
        key_manager=key_manager or get_key_manager(),
        transport=transport,
        logger=logger,
    )
    memory = MemoryCache(
        default_ttl=settings.memory_ttl_seconds,
        max_size=settings.memory_max_entries,
        sweep_interval=settings.memory_sweep_seconds,
    )
    if start_sweeper:
        memory.start_sweeper()

    return NearbyPlacesService(
        memory=memory,
        store=place_repo,
        client=client,
        usage=usage,
        settings=settings,
        logger=logger,
    )
