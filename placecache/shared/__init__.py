"""Shared cross-layer types and exceptions."""

from placecache.shared.exceptions import (
    BadRequest,
    CacheStoreError,
    ExternalServiceError,
    InvalidCredentials,
    KeyMissingError,
    QuotaExceeded,
    UpstreamError,
    UpstreamUnavailable,
)

__all__ = [
    "BadRequest",
    "CacheStoreError",
    "ExternalServiceError",
    "InvalidCredentials",
    "KeyMissingError",
    "QuotaExceeded",
    "UpstreamError",
    "UpstreamUnavailable",
]
