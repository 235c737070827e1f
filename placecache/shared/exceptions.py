"""Shared (non-domain) exceptions."""

from __future__ import annotations

from typing import Optional


class ExternalServiceError(Exception):
    """External service call failed."""


class UpstreamError(ExternalServiceError):
    """The places provider rejected or failed a request.

    Carries the provider name, the HTTP status (when one was received) and the
    provider's message so callers can tell quota, credential and network
    problems apart.
    """

    kind = "upstream_error"
    retryable = False

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        self.message = message
        status = f" HTTP {status_code}" if status_code is not None else ""
        super().__init__(f"[{provider}]{status} {message}")


class InvalidCredentials(UpstreamError):
    """Provider refused the API key (401)."""

    kind = "invalid_credentials"


class QuotaExceeded(UpstreamError):
    """Provider throttled the account (429)."""

    kind = "quota_exceeded"


class BadRequest(UpstreamError):
    """Provider rejected the query parameters (400)."""

    kind = "bad_request"


class UpstreamUnavailable(UpstreamError):
    """Network failure, timeout, malformed body or any other non-2xx."""

    kind = "upstream_unavailable"
    retryable = True


class CacheStoreError(Exception):
    """Persisted cache or usage store could not be read or written."""


class KeyMissingError(Exception):
    """Required key is missing."""

    def __init__(self, name: str):
        self.key_name = name
        super().__init__(f"Missing required API key: {name} (configure it in .env)")
