"""Structured JSON-line logging with secret scrubbing."""

from __future__ import annotations

import json
import sys
import time
import uuid
from typing import Any, Optional


def _get_scrubber():
    """Imported lazily to avoid an import cycle with the security package."""
    try:
        from placecache.security.key_manager import get_key_manager
        return get_key_manager()
    except Exception:
        return None


class StructuredLogger:
    def __init__(self, trace_id: Optional[str] = None, output=None):
        self.trace_id = trace_id or str(uuid.uuid4())[:8]
        self._output = output or sys.stderr

    def _scrub(self, text: str) -> str:
        km = _get_scrubber()
        if km:
            return km.scrub_text(text)
        return text

    def _emit(self, data: dict[str, Any]) -> None:
        data["trace_id"] = self.trace_id
        data["timestamp"] = time.time()
        try:
            line = json.dumps(data, ensure_ascii=False, default=str)
            line = self._scrub(line)
            self._output.write(line + "\n")
            self._output.flush()
        except Exception as exc:
            # Last-resort fallback so a broken sink never hides the failure.
            try:
                fallback = {
                    "event": "logger_internal_error",
                    "trace_id": self.trace_id,
                    "timestamp": time.time(),
                    "error": str(exc),
                }
                sys.stderr.write(json.dumps(fallback, ensure_ascii=False, default=str) + "\n")
                sys.stderr.flush()
            except Exception:
                return

    def lookup(
        self,
        cache_key: str,
        *,
        served_from: str,
        places: int,
        duration_ms: float,
        **extra: Any,
    ) -> None:
        self._emit({
            "event": "lookup",
            "cache_key": cache_key,
            "served_from": served_from,
            "places": places,
            "duration_ms": round(duration_ms, 1),
            **extra,
        })

    def upstream_call(self, provider: str, endpoint: str, *, success: bool, **extra: Any) -> None:
        self._emit({
            "event": "upstream_call",
            "provider": provider,
            "endpoint": endpoint,
            "success": success,
            **extra,
        })

    def error(self, component: str, error: str, **extra: Any) -> None:
        self._emit({"event": "error", "component": component, "error": self._scrub(error), **extra})

    def warning(self, component: str, message: str, **extra: Any) -> None:
        self._emit({"event": "warning", "component": component, "message": self._scrub(message), **extra})


_logger: Optional[StructuredLogger] = None


def get_logger(trace_id: Optional[str] = None) -> StructuredLogger:
    global _logger
    if _logger is None or (trace_id and _logger.trace_id != trace_id):
        _logger = StructuredLogger(trace_id=trace_id)
    return _logger
