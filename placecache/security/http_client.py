"""Outbound HTTP client shared by provider adapters.

Responsibilities:
  1. scrub API keys from every error message
  2. enforce a hard per-request timeout
  3. map provider HTTP statuses to the typed ``UpstreamError`` family
  4. keep httpx out of the adapters
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from placecache.security.key_manager import KeyManager, get_key_manager
from placecache.shared.exceptions import (
    BadRequest,
    InvalidCredentials,
    QuotaExceeded,
    UpstreamError,
    UpstreamUnavailable,
)

_STATUS_ERRORS: dict[int, type[UpstreamError]] = {
    400: BadRequest,
    401: InvalidCredentials,
    429: QuotaExceeded,
}


def _provider_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("message", "error", "detail"):
            value = body.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return resp.reason_phrase or "request failed"


def error_for_status(provider: str, status_code: int, message: str) -> UpstreamError:
    error_cls = _STATUS_ERRORS.get(status_code, UpstreamUnavailable)
    return error_cls(provider, message, status_code=status_code)


class SecureHttpClient:
    """httpx wrapper that raises scrubbed, typed upstream errors."""

    def __init__(
        self,
        *,
        provider: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        key_manager: Optional[KeyManager] = None,
    ):
        self._provider = provider
        self._timeout = timeout
        self._km = key_manager or get_key_manager()
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @property
    def timeout(self) -> float:
        return self._timeout

    def get_json(self, url: str, *, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Single GET attempt returning the decoded JSON object."""
        try:
            resp = self._client.get(url, params=params)
        except httpx.TimeoutException:
            raise UpstreamUnavailable(
                self._provider, f"request timed out after {self._timeout}s"
            ) from None
        except httpx.HTTPError as e:
            safe_msg = self._km.scrub_text(str(e))
            raise UpstreamUnavailable(self._provider, f"network error: {safe_msg}") from None

        if not resp.is_success:
            safe_msg = self._km.scrub_text(_provider_message(resp))
            raise error_for_status(self._provider, resp.status_code, safe_msg)

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamUnavailable(
                self._provider, "malformed response body", status_code=resp.status_code
            ) from None
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                self._provider, "unexpected response shape", status_code=resp.status_code
            )
        return data

    def close(self) -> None:
        self._client.close()
