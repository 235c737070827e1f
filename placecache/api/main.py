"""FastAPI surface for the nearby-places cache."""

from __future__ import annotations

import datetime as dt
import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from placecache.api.schemas import (
    ClearCacheResponse,
    ErrorResponse,
    HealthResponse,
    NearbyPlacesResponse,
    UsageStatsResponse,
)
from placecache.application.context import make_nearby_places_service
from placecache.application.nearby_places import NearbyPlacesService
from placecache.domain.exceptions import InvalidInput, NoResult
from placecache.infrastructure.rate_limiter import (
    ADMIN_LIMIT,
    NEARBY_LIMIT,
    REFRESH_LIMIT,
    USAGE_LIMIT,
    RouteLimit,
    get_rate_limiter,
)
from placecache.security.key_manager import get_key_manager
from placecache.shared.exceptions import (
    CacheStoreError,
    KeyMissingError,
    QuotaExceeded,
    UpstreamError,
)

_api_logger = logging.getLogger("placecache.api")
_TRUTHY = {"1", "true", "yes", "on"}

load_dotenv()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class RateLimited(Exception):
    def __init__(self, limit: RouteLimit):
        self.limit = limit
        super().__init__(limit.message)


def _rate_limit(limit: RouteLimit) -> Callable[[Request], None]:
    limiter = get_rate_limiter(limit)

    def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        if not limiter.allow(client_ip):
            raise RateLimited(limit)

    return dependency


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _error(status_code: int, error: str, message: str, **details) -> JSONResponse:
    safe_msg = get_key_manager().scrub_text(message)
    body = ErrorResponse(error=error, message=safe_msg, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RateLimited)
    async def _rate_limited(request: Request, exc: RateLimited):
        return _error(429, "rate_limited", exc.limit.message, scope=exc.limit.scope)

    @app.exception_handler(InvalidInput)
    async def _invalid_input(request: Request, exc: InvalidInput):
        return _error(400, "invalid_input", str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream(request: Request, exc: UpstreamError):
        status = 429 if isinstance(exc, QuotaExceeded) else 500
        _api_logger.error("Upstream failure on %s: %s", request.url.path, get_key_manager().scrub_text(str(exc)))
        return _error(
            status,
            exc.kind,
            exc.message,
            provider=exc.provider,
            provider_status=exc.status_code,
        )

    @app.exception_handler(KeyMissingError)
    async def _key_missing(request: Request, exc: KeyMissingError):
        _api_logger.error("Places provider is not configured: %s", exc.key_name)
        return _error(500, "configuration_error", "Places provider is not configured")

    @app.exception_handler(NoResult)
    async def _no_result(request: Request, exc: NoResult):
        return _error(500, "no_result", str(exc))

    @app.exception_handler(CacheStoreError)
    async def _store(request: Request, exc: CacheStoreError):
        _api_logger.error("Cache store failure on %s: %s", request.url.path, exc)
        return _error(500, "cache_store_error", "Cache store unavailable")


def create_app(service: Optional[NearbyPlacesService] = None) -> FastAPI:
    """Build the API. Without ``service`` one is created from the environment on first use."""
    holder: dict[str, Optional[NearbyPlacesService]] = {"service": service}
    lock = threading.Lock()

    def get_service() -> NearbyPlacesService:
        if holder["service"] is None:
            with lock:
                if holder["service"] is None:
                    holder["service"] = make_nearby_places_service()
        return holder["service"]

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if holder["service"] is not None:
            holder["service"].close()

    app = FastAPI(
        title="placecache",
        version="1.0.0",
        docs_url="/docs" if os.getenv("ENABLE_DOCS", "false").lower() == "true" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_methods=["GET", "DELETE"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    nearby_limit = _rate_limit(NEARBY_LIMIT)
    refresh_limit = _rate_limit(REFRESH_LIMIT)
    usage_limit = _rate_limit(USAGE_LIMIT)
    admin_limit = _rate_limit(ADMIN_LIMIT)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok")

    @app.get("/nearby-places", response_model=NearbyPlacesResponse, dependencies=[Depends(nearby_limit)])
    def nearby_places(
        lat: Optional[str] = Query(default=None),
        lng: Optional[str] = Query(default=None),
        radius: Optional[str] = Query(default=None),
        force_refresh: bool = Query(default=False, alias="forceRefresh"),
    ):
        result = get_service().get_nearby_places(lat, lng, radius, force_refresh=force_refresh)
        return NearbyPlacesResponse.from_result(result)

    @app.get("/refresh-cache", response_model=NearbyPlacesResponse, dependencies=[Depends(refresh_limit)])
    def refresh_cache(
        lat: Optional[str] = Query(default=None),
        lng: Optional[str] = Query(default=None),
        radius: Optional[str] = Query(default=None),
    ):
        result = get_service().refresh_cache(lat, lng, radius)
        return NearbyPlacesResponse.from_result(result, message="Cache refreshed successfully")

    @app.get("/usage-stats", response_model=UsageStatsResponse, dependencies=[Depends(usage_limit)])
    def usage_stats(
        start_date: Optional[dt.datetime] = Query(default=None, alias="startDate"),
        end_date: Optional[dt.datetime] = Query(default=None, alias="endDate"),
    ):
        svc = get_service()
        stats = svc.get_usage_statistics(_as_utc(start_date), _as_utc(end_date))
        return UsageStatsResponse(stats=stats, quota=svc.get_quota_status())

    @app.delete("/clear-cache", response_model=ClearCacheResponse, dependencies=[Depends(admin_limit)])
    def clear_cache(days: Optional[int] = Query(default=None)):
        deleted = get_service().purge_stale_cache(days)
        return ClearCacheResponse(
            message=f"Cleared {deleted} old cache entries",
            deleted_count=deleted,
        )

    @app.get("/diagnostics")
    def diagnostics():
        if os.getenv("ENABLE_DIAGNOSTICS", "").strip().lower() not in _TRUTHY:
            return _error(404, "not_found", "Not Found")
        return get_service().diagnostics()

    return app


app = create_app()
