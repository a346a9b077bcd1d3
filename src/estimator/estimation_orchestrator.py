# This module is the entrypoint for persona-conditioned cost-of-living estimates.
# It validates the request, fans out one aggregation per relevant category, and combines the results.
# Validation happens before any storage call, and a storage failure aborts the whole estimate.
# A breakdown silently missing a category is never returned.

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from functools import partial

from src.estimator.category_aggregator import AggregationSettings, aggregate_category
from src.estimator.data_access import CostDataPort
from src.estimator.errors import DataAccessError, EstimationError
from src.estimator.estimator_config import EstimatorConfig
from src.estimator.fan_out import run_fan_out
from src.estimator.models import (
    ZERO,
    CategoryEstimate,
    CategoryFilter,
    EstimateResult,
    ObservationWindow,
    PersonaInput,
    utc_now,
)
from src.estimator.persona_resolver import PersonaResolver
from src.estimator.recommendations import build_recommendations

LOGGER = logging.getLogger("estimator")


def overall_confidence(categories: tuple[CategoryEstimate, ...]) -> float:
    """Persona-weighted mean of category confidences."""

    total_weight = sum(estimate.weight for estimate in categories)
    if total_weight <= 0:
        return 0.0
    weighted = sum(estimate.weight * estimate.confidence for estimate in categories)
    return min(max(weighted / total_weight, 0.0), 1.0)


class EstimationOrchestrator:
    """Coordinates persona resolution, per-category aggregation, and result assembly.

    Holds no per-request state, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        *,
        port: CostDataPort,
        config: EstimatorConfig,
        resolver: PersonaResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._port = port
        self._config = config
        self._resolver = resolver or PersonaResolver.from_config(config)
        self._settings = AggregationSettings.from_config(config)
        self._clock = clock

    @property
    def resolver(self) -> PersonaResolver:
        return self._resolver

    def default_window(self) -> ObservationWindow:
        return ObservationWindow.trailing(days=self._config.default_window_days, as_of=self._clock())

    def estimate(
        self,
        region: str,
        persona: PersonaInput,
        window: ObservationWindow | None = None,
        *,
        cancel_event: threading.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> EstimateResult:
        canonical_region = self._config.require_region(region)
        resolved = self._resolver.resolve(persona)
        window = window or self.default_window()

        LOGGER.info(
            "Estimating region=%s persona=%s categories=%d window=%s..%s",
            canonical_region,
            resolved.persona.to_dict(),
            len(resolved.categories),
            window.start.date().isoformat(),
            window.end.date().isoformat(),
        )

        abandoned = threading.Event()
        tasks = [
            partial(
                self._aggregate,
                region=canonical_region,
                category_filter=category_filter,
                window=window,
                abandon_event=abandoned,
            )
            for category_filter in resolved.categories
        ]
        try:
            estimates = run_fan_out(
                tasks,
                max_workers=self._config.max_workers,
                deadline_seconds=deadline_seconds if deadline_seconds is not None else self._config.deadline_seconds,
                cancel_event=cancel_event,
                abandon_event=abandoned,
                label="estimate",
            )
        except EstimationError:
            LOGGER.exception("Estimate aborted for region=%s", canonical_region)
            raise

        categories = tuple(estimates)
        warnings: list[str] = []
        for estimate in categories:
            if not estimate.has_data:
                LOGGER.warning("No %s data for region=%s inside the window", estimate.category, canonical_region)
                warnings.append(
                    f"No {estimate.category} data for {canonical_region} in the observation window; "
                    "reported as zero with zero confidence."
                )

        result = EstimateResult(
            region=canonical_region,
            persona=resolved.persona,
            window=window,
            currency=self._config.currency,
            categories=categories,
            total_low=sum((estimate.low for estimate in categories), ZERO),
            total_high=sum((estimate.high for estimate in categories), ZERO),
            total_point_estimate=sum((estimate.point_estimate for estimate in categories), ZERO),
            overall_confidence=overall_confidence(categories),
            recommendations=build_recommendations(
                categories=categories,
                persona=resolved.persona,
                rules=self._config.recommendation_rules,
            ),
            warnings=tuple(warnings),
        )
        LOGGER.info(
            "Estimate complete region=%s total=%s..%s confidence=%.3f",
            canonical_region,
            result.total_low,
            result.total_high,
            result.overall_confidence,
        )
        return result

    def _aggregate(
        self,
        *,
        region: str,
        category_filter: CategoryFilter,
        window: ObservationWindow,
        abandon_event: threading.Event,
    ) -> CategoryEstimate:
        try:
            return aggregate_category(
                self._port,
                region=region,
                category_filter=category_filter,
                window=window,
                settings=self._settings,
                cancel_event=abandon_event,
            )
        except (ConnectionError, TimeoutError) as exc:
            raise DataAccessError(
                f"cost data query failed for {category_filter.category}",
                transient=True,
                details={"category": category_filter.category, "region": region},
            ) from exc
