"""Numeric helpers shared by normalization, gating, scoring and aggregation."""
from __future__ import annotations

import math
from typing import Any


def clamp(x: float, low: float, high: float) -> float:
    """Clamp into ``[low, high]``, treating NaN as 0."""
    if x != x:  # NaN
        return max(low, min(high, 0.0))
    return max(low, min(high, x))


def clamp01(x: float) -> float:
    return clamp(x, 0.0, 1.0)


def is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def numeric_metrics(metrics: dict[str, Any]) -> dict[str, float]:
    """Keep numeric counters only; negative, NaN and infinite readings are treated as missing."""
    cleaned: dict[str, float] = {}
    for key, value in metrics.items():
        if is_finite_number(value) and value >= 0:
            cleaned[key] = float(value)
    return cleaned


def log_scale(n: float, denominator: float = 7.0) -> float:
    """``log10(n) / denominator`` clamped to 0..1; non-positive counts score 0."""
    if not n or n <= 0:
        return 0.0
    return clamp01(math.log10(n) / denominator)


def recency_decay(age_days: float | None, half_life_days: float, unknown: float = 0.5) -> float:
    """Exponential half-life decay: 1.0 when fresh, 0.5 after one half-life."""
    if age_days is None:
        return unknown
    return clamp01(0.5 ** (max(0.0, age_days) / half_life_days))


def like_rate(likes: float, views: float) -> float:
    if not views:
        return 0.0
    return likes / views
