"""In-process counters for nearby-places lookups."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field


@dataclass
class _LatencyAgg:
    total_ms: float = 0.0
    count: int = 0
    max_ms: float = 0.0
    values: list[float] = field(default_factory=list)

    def add(self, value_ms: float) -> None:
        val = max(0.0, float(value_ms))
        self.total_ms += val
        self.count += 1
        if val > self.max_ms:
            self.max_ms = val
        self.values.append(val)
        if len(self.values) > 5000:
            self.values = self.values[-5000:]

    def p95(self) -> float:
        if not self.values:
            return 0.0
        rows = sorted(self.values)
        idx = max(0, min(len(rows) - 1, math.ceil(len(rows) * 0.95) - 1))
        return rows[idx]

    def snapshot(self) -> dict[str, float]:
        avg_ms = (self.total_ms / self.count) if self.count else 0.0
        return {
            "count": self.count,
            "avg_ms": round(avg_ms, 2),
            "max_ms": round(self.max_ms, 2),
            "p95_ms": round(self.p95(), 2),
        }


class CacheMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._served_from: dict[str, int] = {}
        self._latency: dict[str, _LatencyAgg] = {}
        self._stale_served = 0
        self._upstream_errors: dict[str, int] = {}
        self._store_errors = 0
        self._coalesced = 0

    def record_lookup(self, *, served_from: str, latency_ms: float, stale: bool = False) -> None:
        with self._lock:
            self._served_from[served_from] = self._served_from.get(served_from, 0) + 1
            self._latency.setdefault(served_from, _LatencyAgg()).add(latency_ms)
            if stale:
                self._stale_served += 1

    def record_upstream_error(self, kind: str) -> None:
        with self._lock:
            self._upstream_errors[kind] = self._upstream_errors.get(kind, 0) + 1

    def record_store_error(self) -> None:
        with self._lock:
            self._store_errors += 1

    def record_coalesced(self) -> None:
        with self._lock:
            self._coalesced += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            total = sum(self._served_from.values())
            cached = total - self._served_from.get("upstream", 0)
            return {
                "total_lookups": total,
                "served_from": dict(self._served_from),
                "cache_hit_rate": round(cached / total, 4) if total else 0.0,
                "stale_served": self._stale_served,
                "upstream_errors": dict(self._upstream_errors),
                "store_errors": self._store_errors,
                "coalesced": self._coalesced,
                "latency": {name: agg.snapshot() for name, agg in self._latency.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._served_from = {}
            self._latency = {}
            self._stale_served = 0
            self._upstream_errors = {}
            self._store_errors = 0
            self._coalesced = 0


__all__ = ["CacheMetrics"]
