"""Upstream usage accounting."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional

from placecache.persistence.models import QuotaStatus, UsageRecord, UsageStatistics
from placecache.persistence.repository import UsageRepository
from placecache.persistence.sqlite_repository import utc_now
from placecache.security.redact import redact_sensitive

_logger = logging.getLogger("placecache.usage")


class UsageRecorder:
    def __init__(
        self,
        repo: UsageRepository,
        clock: Callable[[], dt.datetime] = utc_now,
    ):
        self._repo = repo
        self._clock = clock

    def record(
        self,
        provider: str,
        endpoint: str,
        success: bool,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Append one usage row. Never raises: accounting must not fail a lookup."""
        try:
            self._repo.append(
                UsageRecord(
                    provider=provider,
                    endpoint=endpoint,
                    success=success,
                    error_message=error_message,
                    status_code=status_code,
                    timestamp=self._clock(),
                )
            )
        except Exception as exc:
            _logger.error(
                "Failed to record usage for %s/%s: %s",
                provider,
                endpoint,
                redact_sensitive(str(exc)),
            )

    def aggregate(
        self,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> UsageStatistics:
        return self._repo.aggregate(start, end)

    def quota_status(
        self,
        provider: str,
        daily_limit: int,
        alert_ratio: float = 0.8,
        now: Optional[dt.datetime] = None,
    ) -> QuotaStatus:
        """Calls made today (UTC) against ``daily_limit``."""
        current = now or self._clock()
        day_start = current.astimezone(dt.timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        used = self._repo.count(provider=provider, start=day_start, end=current)
        ratio = used / daily_limit if daily_limit > 0 else 0.0
        return QuotaStatus(
            provider=provider,
            used_today=used,
            daily_limit=daily_limit,
            usage_ratio=round(ratio, 4),
            alert=ratio >= alert_ratio,
        )
