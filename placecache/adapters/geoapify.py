"""Geoapify Places API adapter.

Environment: GEOAPIFY_API_KEY
API docs: https://apidocs.geoapify.com/docs/places/
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Protocol

import httpx

from placecache.infrastructure.logging import StructuredLogger, get_logger
from placecache.security.http_client import SecureHttpClient
from placecache.security.key_manager import KeyManager, get_key_manager
from placecache.shared.exceptions import UpstreamError

PROVIDER = "geoapify"
ENDPOINT = "nearby_places"
DEFAULT_URL = "https://api.geoapify.com/v2/places"
DEFAULT_CATEGORIES = "tourism,accommodation,catering,entertainment,leisure,commercial,building"

_logger = logging.getLogger("placecache.upstream")


class UsageSink(Protocol):
    def record(
        self,
        provider: str,
        endpoint: str,
        success: bool,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None: ...


class GeoapifyPlacesClient:
    """Fetches raw nearby-places feature collections.

    Each HTTP attempt writes one usage record. Only ``UpstreamUnavailable``
    is retried, and only when ``max_retries`` is above zero.
    """

    provider = PROVIDER
    endpoint = ENDPOINT

    def __init__(
        self,
        usage: UsageSink,
        *,
        base_url: str = DEFAULT_URL,
        categories: str = DEFAULT_CATEGORIES,
        limit: int = 50,
        timeout: float = 10.0,
        max_retries: int = 0,
        backoff_seconds: float = 1.0,
        key_manager: Optional[KeyManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[StructuredLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._usage = usage
        self._base_url = base_url
        self._categories = categories
        self._limit = limit
        self._max_retries = max(0, int(max_retries))
        self._backoff = backoff_seconds
        self._km = key_manager or get_key_manager()
        self._http = SecureHttpClient(
            provider=PROVIDER, timeout=timeout, transport=transport, key_manager=self._km
        )
        self._log = logger or get_logger()
        self._sleep = sleep

    def _params(self, lat: float, lng: float, radius: int, api_key: str) -> dict[str, Any]:
        return {
            "categories": self._categories,
            "filter": f"circle:{lng},{lat},{int(radius)}",
            "limit": self._limit,
            "apiKey": api_key,
        }

    def _record(self, attempt: int, error: Optional[UpstreamError] = None) -> None:
        success = error is None
        self._usage.record(
            PROVIDER,
            ENDPOINT,
            success,
            error_message=None if success else error.message,
            status_code=None if success else error.status_code,
        )
        self._log.upstream_call(
            PROVIDER,
            ENDPOINT,
            success=success,
            attempt=attempt,
            error_kind=None if success else error.kind,
            status_code=None if success else error.status_code,
        )

    def fetch(self, lat: float, lng: float, radius: int) -> dict[str, Any]:
        """Return the provider's raw response for a circle query.

        Raises ``KeyMissingError`` before any attempt when no key is configured,
        otherwise an ``UpstreamError`` subclass on terminal failure.
        """
        api_key = self._km.get_geoapify_key(required=True)
        params = self._params(lat, lng, radius, api_key)

        attempt = 0
        while True:
            attempt += 1
            try:
                data = self._http.get_json(self._base_url, params=params)
            except UpstreamError as exc:
                self._record(attempt, exc)
                if not exc.retryable or attempt > self._max_retries:
                    raise
                delay = self._backoff * attempt
                _logger.warning(
                    "Geoapify attempt %d failed (%s), retrying in %.1fs", attempt, exc.kind, delay
                )
                self._sleep(delay)
                continue
            self._record(attempt)
            return data

    def close(self) -> None:
        self._http.close()
