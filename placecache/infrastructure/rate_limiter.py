"""Per-route request throttling with an in-memory default and optional Redis backend."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable

from placecache.security.redact import redact_sensitive

try:
    import redis
except Exception:  # pragma: no cover - optional dependency
    redis = None

_logger = logging.getLogger("placecache.rate-limit")
_DEFAULT_PREFIX = "placecache:ratelimit:"


@dataclass(frozen=True)
class RouteLimit:
    scope: str
    max_requests: int
    window_seconds: int
    message: str


# Windows mirror the public API's published limits.
NEARBY_LIMIT = RouteLimit("nearby", 30, 60, "Too many nearby places requests. Try again later.")
REFRESH_LIMIT = RouteLimit("refresh", 4, 300, "Cache refresh rate limit exceeded. Try again later.")
USAGE_LIMIT = RouteLimit("usage", 60, 60, "Too many usage stats requests.")
ADMIN_LIMIT = RouteLimit("admin", 6, 600, "Too many admin cache operations.")


class InMemoryRateLimiter:
    """Thread-safe sliding-window limiter."""

    backend = "memory"

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        self._max = max(1, int(max_requests))
        self._window = max(1, int(window_seconds))
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._next_prune = clock() + self._window

    def _prune(self, now: float) -> None:
        """Forget clients with no hit inside the window. Caller holds the lock."""
        idle = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self._window]
        for key in idle:
            del self._hits[key]
        self._next_prune = now + self._window

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if now >= self._next_prune:
                self._prune(now)
            hits = [t for t in self._hits.get(key, []) if now - t < self._window]
            if len(hits) >= self._max:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)


class RedisRateLimiter:
    """Fixed-window limiter shared by every API worker."""

    backend = "redis"

    def __init__(self, redis_url: str, max_requests: int, window_seconds: int, prefix: str = _DEFAULT_PREFIX):
        if redis is None:  # pragma: no cover
            raise RuntimeError("redis package is not installed")
        self._max = max(1, int(max_requests))
        self._window = max(1, int(window_seconds))
        self._prefix = prefix
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client.ping()

    def allow(self, key: str) -> bool:
        bucket = int(time.time()) // self._window
        redis_key = f"{self._prefix}{key}:{bucket}"
        count = self._client.incr(redis_key)
        if count == 1:
            self._client.expire(redis_key, self._window + 5)
        return int(count) <= self._max


def get_rate_limiter(limit: RouteLimit):
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL")
    if redis_url:
        if redis is None:
            _logger.warning("Rate limiter redis url is set but redis is not installed; using memory")
        else:
            try:
                limiter = RedisRateLimiter(
                    redis_url, limit.max_requests, limit.window_seconds, prefix=f"{_DEFAULT_PREFIX}{limit.scope}:"
                )
                _logger.info("Rate limiter for %s initialized with Redis backend", limit.scope)
                return limiter
            except Exception as exc:
                _logger.warning(
                    "Failed to initialize Redis rate limiter for %s, using memory: %s",
                    limit.scope,
                    redact_sensitive(str(exc)),
                )

    return InMemoryRateLimiter(max_requests=limit.max_requests, window_seconds=limit.window_seconds)
