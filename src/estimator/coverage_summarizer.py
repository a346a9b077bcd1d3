# This module reports data coverage and freshness for one region, independent of any persona.
# It exists so operators can see which categories are empty or ageing before users notice weak estimates.
# Every known category is inspected; an empty category is a gap, not an error.
# Storage failures abort the summary the same way they abort an estimate.

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from functools import partial

from src.estimator.data_access import CostDataPort
from src.estimator.errors import DataAccessError, EstimationError
from src.estimator.estimator_config import EstimatorConfig
from src.estimator.fan_out import run_fan_out
from src.estimator.models import CategoryCoverage, CoverageSummary, utc_now
from src.estimator.persona_resolver import PersonaResolver

LOGGER = logging.getLogger("estimator.coverage")

FRESH = "fresh"
STALE = "stale"
EXPIRED = "expired"
MISSING = "missing"

# Best to worst; the overall status is the worst status among covered categories.
_SEVERITY = {FRESH: 0, STALE: 1, EXPIRED: 2, MISSING: 3}


def freshness_status(age_days: float | None, *, fresh_days: int, stale_days: int) -> str:
    if age_days is None:
        return MISSING
    if age_days <= fresh_days:
        return FRESH
    if age_days <= stale_days:
        return STALE
    return EXPIRED


class CoverageSummarizer:
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
        self._clock = clock

    def summarize(
        self,
        region: str,
        *,
        cancel_event: threading.Event | None = None,
        as_of: datetime | None = None,
    ) -> CoverageSummary:
        canonical_region = self._config.require_region(region)
        as_of = as_of or self._clock()
        categories = self._resolver.known_categories

        abandoned = threading.Event()
        tasks = [
            partial(self._inspect, region=canonical_region, category=category, as_of=as_of, abandon_event=abandoned)
            for category in categories
        ]
        try:
            entries = tuple(
                run_fan_out(
                    tasks,
                    max_workers=self._config.max_workers,
                    deadline_seconds=self._config.deadline_seconds,
                    cancel_event=cancel_event,
                    abandon_event=abandoned,
                    label="coverage",
                )
            )
        except EstimationError:
            LOGGER.exception("Coverage summary aborted for region=%s", canonical_region)
            raise

        covered = [entry for entry in entries if not entry.gap]
        warnings = [f"No {entry.category} data recorded for {canonical_region}." for entry in entries if entry.gap]
        warnings.extend(
            f"{entry.category} data for {canonical_region} is {entry.freshness_status} "
            f"({entry.age_days:.0f} days old)."
            for entry in covered
            if entry.freshness_status != FRESH
        )

        if covered:
            overall = max((entry.freshness_status for entry in covered), key=_SEVERITY.__getitem__)
            freshest = max(entry.freshest_recorded_at for entry in covered if entry.freshest_recorded_at)
        else:
            overall = MISSING
            freshest = None

        summary = CoverageSummary(
            region=canonical_region,
            as_of=as_of,
            categories=entries,
            freshness_status=overall,
            freshest_recorded_at=freshest,
            coverage_ratio=len(covered) / len(entries) if entries else 0.0,
            total_samples=sum(entry.sample_count for entry in entries),
            warnings=tuple(warnings),
        )
        if summary.gaps:
            LOGGER.warning("Coverage gaps for region=%s: %s", canonical_region, ", ".join(summary.gaps))
        LOGGER.info(
            "Coverage summary region=%s status=%s ratio=%.2f samples=%d",
            canonical_region,
            summary.freshness_status,
            summary.coverage_ratio,
            summary.total_samples,
        )
        return summary

    def _inspect(
        self,
        *,
        region: str,
        category: str,
        as_of: datetime,
        abandon_event: threading.Event,
    ) -> CategoryCoverage:
        try:
            sample_count = self._port.count(region=region, category=category, cancel_event=abandon_event)
            freshest = None
            if sample_count:
                freshest = self._port.latest_timestamp(region=region, category=category, cancel_event=abandon_event)
        except (ConnectionError, TimeoutError) as exc:
            raise DataAccessError(
                f"coverage query failed for {category}",
                transient=True,
                details={"category": category, "region": region},
            ) from exc

        age_days = None
        if freshest is not None:
            age_days = max((as_of - freshest).total_seconds() / 86400.0, 0.0)
        return CategoryCoverage(
            category=category,
            sample_count=sample_count,
            freshest_recorded_at=freshest,
            age_days=age_days,
            freshness_status=freshness_status(
                age_days,
                fresh_days=self._config.fresh_days,
                stale_days=self._config.stale_days,
            ),
        )
