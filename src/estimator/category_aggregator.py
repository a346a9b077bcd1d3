# This module reduces the data points of one category into a CategoryEstimate.
# It exists to keep the per-category math (median, interquartile range, confidence) in one pure function.
# The median and IQR are robust to single outlier listings; weighted variants apply when sub-categories carry shares.
# Zero matching points is an expected state and yields a zero estimate with zero confidence, not an error.

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from src.estimator.data_access import CostDataPort
from src.estimator.estimator_config import EstimatorConfig
from src.estimator.models import (
    CategoryEstimate,
    CategoryFilter,
    CostDataPoint,
    ObservationWindow,
    to_money,
)
from src.estimator.statistics import confidence_score, weighted_percentile

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class AggregationSettings:
    fresh_days: int
    stale_days: int
    recency_floor: float
    saturation_n: int
    dispersion_penalty: float
    annual_units: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: EstimatorConfig) -> AggregationSettings:
        return cls(
            fresh_days=config.fresh_days,
            stale_days=config.stale_days,
            recency_floor=config.recency_floor,
            saturation_n=config.confidence_saturation_n,
            dispersion_penalty=config.dispersion_penalty,
            annual_units=tuple(unit.lower() for unit in config.annual_units),
        )


def monthly_amount(point: CostDataPoint, annual_units: tuple[str, ...]) -> float:
    amount = float(point.amount)
    if point.unit and point.unit.strip().lower() in annual_units:
        return amount / 12.0
    return amount


def select_points(
    points: Iterable[CostDataPoint],
    *,
    region: str,
    category_filter: CategoryFilter,
    window: ObservationWindow,
) -> list[CostDataPoint]:
    wanted_subs = {name.lower() for name in category_filter.sub_category_names()}
    selected: list[CostDataPoint] = []
    for point in points:
        if point.region.lower() != region.lower():
            continue
        if point.category.lower() != category_filter.category.lower():
            continue
        if wanted_subs and point.sub_category.lower() not in wanted_subs:
            continue
        if not window.contains(point.recorded_at):
            continue
        selected.append(point)
    return selected


def _sample_weights(points: list[CostDataPoint], category_filter: CategoryFilter) -> list[float] | None:
    shares = category_filter.sub_category_weights()
    if len(set(shares.values())) <= 1:
        return None
    # Each sub-category's share is split evenly across its own samples.
    counts = Counter(point.sub_category.lower() for point in points)
    return [shares[point.sub_category.lower()] / counts[point.sub_category.lower()] for point in points]


def aggregate_points(
    points: Iterable[CostDataPoint],
    *,
    region: str,
    category_filter: CategoryFilter,
    window: ObservationWindow,
    settings: AggregationSettings,
) -> CategoryEstimate:
    selected = select_points(points, region=region, category_filter=category_filter, window=window)
    sub_names = category_filter.sub_category_names()
    if not selected:
        return CategoryEstimate.empty(
            category=category_filter.category,
            weight=category_filter.weight,
            sub_categories=sub_names,
        )

    values = [monthly_amount(point, settings.annual_units) for point in selected]
    weights = _sample_weights(selected, category_filter)

    point_value = weighted_percentile(values, weights, 50.0)
    if len(values) < 2:
        low_value = high_value = point_value
    else:
        low_value = weighted_percentile(values, weights, 25.0)
        high_value = weighted_percentile(values, weights, 75.0)

    point_estimate = to_money(point_value)
    low = min(to_money(low_value), point_estimate)
    high = max(to_money(high_value), point_estimate)

    freshest = max(point.recorded_at for point in selected)
    age_days = max((window.end - freshest).total_seconds() / SECONDS_PER_DAY, 0.0)
    confidence = confidence_score(
        sample_count=len(selected),
        age_days=age_days,
        low=float(low),
        point=float(point_estimate),
        high=float(high),
        saturation_n=settings.saturation_n,
        fresh_days=settings.fresh_days,
        stale_days=settings.stale_days,
        recency_floor=settings.recency_floor,
        dispersion_penalty=settings.dispersion_penalty,
    )

    return CategoryEstimate(
        category=category_filter.category,
        low=low,
        point_estimate=point_estimate,
        high=high,
        confidence=confidence,
        sample_size=len(selected),
        weight=category_filter.weight,
        sub_categories=sub_names,
        sources=tuple(sorted({point.source for point in selected if point.source})),
        freshest_recorded_at=freshest,
    )


def aggregate_category(
    port: CostDataPort,
    *,
    region: str,
    category_filter: CategoryFilter,
    window: ObservationWindow,
    settings: AggregationSettings,
    cancel_event: threading.Event | None = None,
) -> CategoryEstimate:
    """Query the port for one category and reduce the result; port errors propagate."""

    points = port.query(
        region=region,
        category=category_filter.category,
        sub_categories=category_filter.sub_category_names(),
        window=window,
        cancel_event=cancel_event,
    )
    return aggregate_points(
        points,
        region=region,
        category_filter=category_filter,
        window=window,
        settings=settings,
    )
