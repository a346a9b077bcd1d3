# This module defines the value types exchanged between the estimator components.
# It exists so the aggregator, orchestrator, and coverage summarizer share one immutable vocabulary.
# All outputs are plain frozen dataclasses with `to_dict()` helpers for JSON-friendly rendering.
# Monetary values are Decimals rounded to the currency's smallest unit so totals never drift.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CURRENCY_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Round a numeric value to the currency's smallest unit."""

    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CURRENCY_UNIT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _require_aware(name: str, value: datetime) -> None:
    if value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware, got naive datetime: {value!r}")


@dataclass(frozen=True)
class CostDataPoint:
    id: str
    recorded_at: datetime
    category: str
    sub_category: str
    region: str
    amount: Decimal
    source: str | None = None
    unit: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_aware("recorded_at", self.recorded_at)
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError(f"amount must be >= 0 for data point {self.id!r}, got {self.amount}")


@dataclass(frozen=True)
class PersonaInput:
    housing_type: str
    lifestyle_tier: str
    transport_mode: str

    def dimension_values(self) -> dict[str, str]:
        return {
            "housing_type": self.housing_type,
            "lifestyle_tier": self.lifestyle_tier,
            "transport_mode": self.transport_mode,
        }

    def to_dict(self) -> dict[str, str]:
        return self.dimension_values()


@dataclass(frozen=True)
class ObservationWindow:
    """Trailing time range of observations considered current, inclusive on both ends."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        _require_aware("window start", self.start)
        _require_aware("window end", self.end)
        if self.start > self.end:
            raise ValueError(f"window start {self.start.isoformat()} is after end {self.end.isoformat()}")

    @classmethod
    def trailing(cls, *, days: int, as_of: datetime) -> ObservationWindow:
        if days <= 0:
            raise ValueError(f"window days must be > 0, got {days}")
        return cls(start=as_of - timedelta(days=days), end=as_of)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class SubCategoryFilter:
    name: str
    weight: float = 1.0


@dataclass(frozen=True)
class CategoryFilter:
    """One relevant category for a resolved persona; empty `sub_categories` matches all."""

    category: str
    sub_categories: tuple[SubCategoryFilter, ...]
    weight: float

    def sub_category_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.sub_categories)

    def sub_category_weights(self) -> dict[str, float]:
        return {item.name.lower(): item.weight for item in self.sub_categories}


@dataclass(frozen=True)
class CategoryEstimate:
    category: str
    low: Decimal
    point_estimate: Decimal
    high: Decimal
    confidence: float
    sample_size: int
    weight: float
    sub_categories: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    freshest_recorded_at: datetime | None = None

    def __post_init__(self) -> None:
        if not (self.low <= self.point_estimate <= self.high):
            raise ValueError(
                f"{self.category}: expected low <= point <= high, got "
                f"{self.low} / {self.point_estimate} / {self.high}"
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"{self.category}: confidence must be within [0, 1], got {self.confidence}")

    @classmethod
    def empty(cls, *, category: str, weight: float, sub_categories: tuple[str, ...] = ()) -> CategoryEstimate:
        return cls(
            category=category,
            low=ZERO,
            point_estimate=ZERO,
            high=ZERO,
            confidence=0.0,
            sample_size=0,
            weight=weight,
            sub_categories=sub_categories,
        )

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "low": str(self.low),
            "point_estimate": str(self.point_estimate),
            "high": str(self.high),
            "confidence": self.confidence,
            "sample_size": self.sample_size,
            "weight": self.weight,
            "sub_categories": list(self.sub_categories),
            "sources": list(self.sources),
            "freshest_recorded_at": self.freshest_recorded_at.isoformat() if self.freshest_recorded_at else None,
        }


@dataclass(frozen=True)
class EstimateResult:
    region: str
    persona: PersonaInput
    window: ObservationWindow
    currency: str
    categories: tuple[CategoryEstimate, ...]
    total_low: Decimal
    total_high: Decimal
    total_point_estimate: Decimal
    overall_confidence: float
    recommendations: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def category(self, name: str) -> CategoryEstimate:
        for estimate in self.categories:
            if estimate.category == name:
                return estimate
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "persona": self.persona.to_dict(),
            "window": self.window.to_dict(),
            "currency": self.currency,
            "categories": [estimate.to_dict() for estimate in self.categories],
            "total_low": str(self.total_low),
            "total_high": str(self.total_high),
            "total_point_estimate": str(self.total_point_estimate),
            "overall_confidence": self.overall_confidence,
            "recommendations": list(self.recommendations),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class CategoryCoverage:
    category: str
    sample_count: int
    freshest_recorded_at: datetime | None
    age_days: float | None
    freshness_status: str

    @property
    def gap(self) -> bool:
        return self.sample_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "sample_count": self.sample_count,
            "freshest_recorded_at": self.freshest_recorded_at.isoformat() if self.freshest_recorded_at else None,
            "age_days": self.age_days,
            "freshness_status": self.freshness_status,
            "gap": self.gap,
        }


@dataclass(frozen=True)
class CoverageSummary:
    region: str
    as_of: datetime
    categories: tuple[CategoryCoverage, ...]
    freshness_status: str
    freshest_recorded_at: datetime | None
    coverage_ratio: float
    total_samples: int
    warnings: tuple[str, ...] = ()

    def category(self, name: str) -> CategoryCoverage:
        for entry in self.categories:
            if entry.category == name:
                return entry
        raise KeyError(name)

    @property
    def gaps(self) -> tuple[str, ...]:
        return tuple(entry.category for entry in self.categories if entry.gap)

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "as_of": self.as_of.isoformat(),
            "categories": [entry.to_dict() for entry in self.categories],
            "gaps": list(self.gaps),
            "freshness_status": self.freshness_status,
            "freshest_recorded_at": self.freshest_recorded_at.isoformat() if self.freshest_recorded_at else None,
            "coverage_ratio": self.coverage_ratio,
            "total_samples": self.total_samples,
            "warnings": list(self.warnings),
        }
