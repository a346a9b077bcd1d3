# This file provides shared helpers for estimator engine tests.
# It exists so tests can drive the engine against an in-memory port instead of a real database.
# The fake port records every call and can be told to fail or block for chosen categories.
# Config is loaded from the repository YAML so tests exercise the shipped lookup table.

from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from src.estimator.data_access import CostDataPort, raise_if_cancelled
from src.estimator.estimator_config import EstimatorConfig, load_estimator_config
from src.estimator.models import CostDataPoint, ObservationWindow, PersonaInput

ROOT_DIR = Path(__file__).resolve().parents[2]
CONFIG_PATH = ROOT_DIR / "configs" / "estimator.yaml"

AS_OF = datetime(2024, 6, 30, 12, 0, tzinfo=UTC)

# Sub-category used for each category by the standard/public/1BR persona.
STANDARD_SUBS = {
    "housing": "1BR Rent",
    "utilities": "Electricity",
    "transportation": "Public Transport",
    "groceries": "Standard Basket",
    "dining": "Casual Dining",
    "entertainment": "Cinema",
}


def build_test_config(**overrides: Any) -> EstimatorConfig:
    """Load the shipped config, optionally replacing individual fields."""

    config = load_estimator_config(config_path=str(CONFIG_PATH))
    return replace(config, **overrides) if overrides else config


def standard_persona() -> PersonaInput:
    return PersonaInput(housing_type="1BR", lifestyle_tier="standard", transport_mode="public")


def observation_window(days: int = 180) -> ObservationWindow:
    return ObservationWindow.trailing(days=days, as_of=AS_OF)


def make_point(
    amount: float | str,
    *,
    category: str = "housing",
    sub_category: str = "1BR Rent",
    region: str = "Dubai",
    days_ago: float = 1.0,
    point_id: str | None = None,
    source: str | None = "bayut",
    unit: str | None = None,
) -> CostDataPoint:
    recorded_at = AS_OF - timedelta(days=days_ago)
    return CostDataPoint(
        id=point_id or f"{category}-{sub_category}-{amount}-{days_ago}",
        recorded_at=recorded_at,
        category=category,
        sub_category=sub_category,
        region=region,
        amount=Decimal(str(amount)),
        source=source,
        unit=unit,
    )


def category_points(category: str, amounts: Sequence[float], *, region: str = "Dubai", days_ago: float = 1.0) -> list[CostDataPoint]:
    return [
        make_point(
            amount,
            category=category,
            sub_category=STANDARD_SUBS[category],
            region=region,
            days_ago=days_ago,
            point_id=f"{category}-{index}",
        )
        for index, amount in enumerate(amounts)
    ]


def full_dataset(region: str = "Dubai") -> list[CostDataPoint]:
    """Ten recent points per category for the standard persona."""

    base = {
        "housing": 6500,
        "utilities": 700,
        "transportation": 350,
        "groceries": 1800,
        "dining": 900,
        "entertainment": 400,
    }
    points: list[CostDataPoint] = []
    for category, amount in base.items():
        points.extend(category_points(category, [amount + step * 10 for step in range(10)], region=region))
    return points


class FakeCostDataPort(CostDataPort):
    """In-memory port that mimics the SQL repository's filtering."""

    def __init__(
        self,
        points: Sequence[CostDataPoint] = (),
        *,
        fail_categories: dict[str, Exception] | None = None,
        block_categories: set[str] | None = None,
    ) -> None:
        self._points = list(points)
        self._fail = dict(fail_categories or {})
        self._block = set(block_categories or ())
        self.release = threading.Event()
        self.calls: list[tuple[str, str, str]] = []
        self.cancel_events: list[threading.Event] = []
        self.abandoned_calls: list[str] = []
        self._lock = threading.Lock()

    def _record(self, operation: str, region: str, category: str, cancel_event: threading.Event | None) -> None:
        with self._lock:
            self.calls.append((operation, region, category))
            if cancel_event is not None:
                self.cancel_events.append(cancel_event)
        if category in self._fail:
            raise self._fail[category]
        if category in self._block:
            deadline = time.monotonic() + 5
            while not self.release.is_set() and time.monotonic() < deadline:
                if cancel_event is not None and cancel_event.is_set():
                    with self._lock:
                        self.abandoned_calls.append(category)
                    raise_if_cancelled(cancel_event, operation)
                time.sleep(0.01)

    def _matching(self, region: str, category: str) -> list[CostDataPoint]:
        return [
            point
            for point in self._points
            if point.region.lower() == region.lower() and point.category.lower() == category.lower()
        ]

    def query(
        self,
        *,
        region: str,
        category: str,
        sub_categories: Sequence[str],
        window: ObservationWindow,
        cancel_event: threading.Event | None = None,
    ) -> list[CostDataPoint]:
        self._record("query", region, category, cancel_event)
        wanted = {name.lower() for name in sub_categories}
        return [
            point
            for point in self._matching(region, category)
            if window.contains(point.recorded_at) and (not wanted or point.sub_category.lower() in wanted)
        ]

    def latest_timestamp(
        self,
        *,
        region: str,
        category: str,
        cancel_event: threading.Event | None = None,
    ) -> datetime | None:
        self._record("latest_timestamp", region, category, cancel_event)
        matching = self._matching(region, category)
        return max((point.recorded_at for point in matching), default=None)

    def count(self, *, region: str, category: str, cancel_event: threading.Event | None = None) -> int:
        self._record("count", region, category, cancel_event)
        return len(self._matching(region, category))
