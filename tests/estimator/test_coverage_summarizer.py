# This test file validates the per-region coverage and freshness summary.
# It exists so data gaps are reported as gaps, and ageing data is classified consistently.
# The tests cover gap detection, freshness classes, overall status, and region validation.
# A fake port with recorded calls stands in for storage.

from __future__ import annotations

import pytest

from src.estimator.coverage_summarizer import CoverageSummarizer, freshness_status
from src.estimator.errors import DataAccessError, RegionNotSupportedError
from src.estimator.models import utc_now
from tests.estimator.support import AS_OF, FakeCostDataPort, build_test_config, category_points, full_dataset


def _summarizer(port: FakeCostDataPort) -> CoverageSummarizer:
    return CoverageSummarizer(port=port, config=build_test_config(), clock=lambda: AS_OF)


def test_missing_category_is_reported_as_gap() -> None:
    points = [point for point in full_dataset() if point.category != "entertainment"]

    summary = _summarizer(FakeCostDataPort(points)).summarize("Dubai")

    assert summary.gaps == ("entertainment",)
    assert summary.category("entertainment").sample_count == 0
    assert summary.category("entertainment").freshness_status == "missing"
    assert summary.category("housing").gap is False
    assert summary.coverage_ratio == pytest.approx(5 / 6)
    assert summary.total_samples == 50
    assert summary.freshness_status == "fresh"
    assert any("entertainment" in warning for warning in summary.warnings)


def test_every_known_category_is_listed_in_order() -> None:
    summary = _summarizer(FakeCostDataPort(full_dataset())).summarize("abu dhabi")

    assert summary.region == "Abu Dhabi"
    assert tuple(entry.category for entry in summary.categories) == (
        "housing",
        "utilities",
        "transportation",
        "groceries",
        "dining",
        "entertainment",
    )
    assert summary.freshness_status == "missing"
    assert summary.coverage_ratio == 0.0
    assert summary.freshest_recorded_at is None


def test_overall_status_is_worst_covered_category() -> None:
    points = (
        category_points("housing", [6000, 6100], days_ago=2)
        + category_points("groceries", [1800], days_ago=60)
        + category_points("dining", [900], days_ago=120)
    )

    summary = _summarizer(FakeCostDataPort(points)).summarize("Dubai")

    assert summary.category("housing").freshness_status == "fresh"
    assert summary.category("groceries").freshness_status == "stale"
    assert summary.category("dining").freshness_status == "expired"
    assert summary.freshness_status == "expired"
    assert summary.freshest_recorded_at == summary.category("housing").freshest_recorded_at
    assert summary.category("groceries").age_days == pytest.approx(60.0)


def test_unsupported_region_is_rejected_before_any_query() -> None:
    port = FakeCostDataPort(full_dataset())

    with pytest.raises(RegionNotSupportedError):
        _summarizer(port).summarize("Mars")

    assert port.calls == []


def test_storage_failure_aborts_summary() -> None:
    port = FakeCostDataPort(full_dataset(), fail_categories={"utilities": TimeoutError("pool exhausted")})

    with pytest.raises(DataAccessError) as excinfo:
        _summarizer(port).summarize("Dubai")

    assert excinfo.value.transient is True
    assert port.cancel_events
    assert all(event.is_set() for event in port.cancel_events)


def test_default_clock_is_current_utc_time() -> None:
    before = utc_now()

    summary = CoverageSummarizer(port=FakeCostDataPort(full_dataset()), config=build_test_config()).summarize("Dubai")

    assert before <= summary.as_of <= utc_now()
    assert summary.as_of.tzinfo is not None


def test_freshness_thresholds() -> None:
    assert freshness_status(None, fresh_days=30, stale_days=90) == "missing"
    assert freshness_status(30.0, fresh_days=30, stale_days=90) == "fresh"
    assert freshness_status(30.5, fresh_days=30, stale_days=90) == "stale"
    assert freshness_status(90.0, fresh_days=30, stale_days=90) == "stale"
    assert freshness_status(91.0, fresh_days=30, stale_days=90) == "expired"
