"""Memory-tier cache key derivation."""

from __future__ import annotations

KEY_PRECISION = 4  # ~11m at the equator


def _quantize(value: float) -> float:
    # round(-0.00001, 4) is -0.0; adding 0.0 folds it onto 0.0.
    return round(float(value), KEY_PRECISION) + 0.0


def derive_cache_key(lat: float, lng: float, radius: int) -> str:
    return f"places_{_quantize(lat):.{KEY_PRECISION}f}_{_quantize(lng):.{KEY_PRECISION}f}_{int(radius)}"
