# This module holds the numeric building blocks of a category estimate.
# It exists so percentile and confidence curves can be unit-tested apart from data access.
# Weighted percentiles interpolate between cumulative-weight midpoints; equal weights match numpy's default.
# Confidence multiplies a sample-size curve, a recency decay, and a dispersion penalty, clipped to [0, 1].

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def weighted_percentile(values: Sequence[float], weights: Sequence[float] | None, q: float) -> float:
    """Percentile `q` (0-100) of `values`, optionally weighted.

    Each sample sits at the midpoint of its cumulative weight, (S_i - w_i / 2) / S_n,
    and `q` is interpolated between those positions. Quantiles below the first
    midpoint or above the last clamp to the smallest or largest value. Equal
    weights use numpy's linear interpolation instead.
    """

    if len(values) == 0:
        raise ValueError("weighted_percentile requires at least one value")
    if not 0.0 <= q <= 100.0:
        raise ValueError(f"percentile must be within [0, 100], got {q}")

    data = np.asarray(values, dtype=float)
    if weights is None:
        return float(np.percentile(data, q))

    w = np.asarray(weights, dtype=float)
    if w.shape != data.shape:
        raise ValueError("values and weights must have the same length")
    if (w <= 0).any():
        raise ValueError("weights must be > 0")
    if np.allclose(w, w[0]):
        return float(np.percentile(data, q))

    order = np.argsort(data, kind="stable")
    data = data[order]
    w = w[order]

    cumulative = np.cumsum(w)
    positions = (cumulative - w / 2.0) / cumulative[-1]
    return float(np.interp(q / 100.0, positions, data))


def sample_count_factor(sample_count: int, saturation_n: int) -> float:
    """Rises from 0 at n=0 to exactly 1 at n >= saturation_n (quadratic ease-out)."""

    if sample_count <= 0:
        return 0.0
    fraction = min(sample_count, saturation_n) / float(saturation_n)
    return 1.0 - (1.0 - fraction) ** 2


def recency_factor(age_days: float, *, fresh_days: int, stale_days: int, floor: float) -> float:
    """1.0 up to fresh_days, linear down to `floor` at stale_days, `floor` beyond."""

    if age_days <= fresh_days:
        return 1.0
    if age_days >= stale_days:
        return floor
    progress = (age_days - fresh_days) / float(stale_days - fresh_days)
    return 1.0 - progress * (1.0 - floor)


def dispersion_factor(*, low: float, point: float, high: float, penalty: float) -> float:
    if point <= 0 or penalty <= 0:
        return 1.0
    relative_spread = max(high - low, 0.0) / point
    return 1.0 / (1.0 + penalty * relative_spread)


def confidence_score(
    *,
    sample_count: int,
    age_days: float,
    low: float,
    point: float,
    high: float,
    saturation_n: int,
    fresh_days: int,
    stale_days: int,
    recency_floor: float,
    dispersion_penalty: float,
) -> float:
    if sample_count <= 0:
        return 0.0
    raw = (
        sample_count_factor(sample_count, saturation_n)
        * recency_factor(age_days, fresh_days=fresh_days, stale_days=stale_days, floor=recency_floor)
        * dispersion_factor(low=low, point=point, high=high, penalty=dispersion_penalty)
    )
    return float(np.clip(raw, 0.0, 1.0))
