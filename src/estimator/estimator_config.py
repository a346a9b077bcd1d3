# This file defines runtime configuration for the cost-of-living estimator.
# It exists so the CLI, web handlers, and tests all build the engine from one immutable value.
# The loader merges YAML defaults with ESTIMATOR_* environment overrides and validates thresholds.
# The persona-to-category lookup table is loaded here once, at process start, never per request.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.estimator.errors import RegionNotSupportedError

REQUIRED_CONFIG_KEYS = {
    "region_allowlist",
    "fresh_days",
    "stale_days",
    "confidence_saturation_n",
    "persona_category_map",
}


def _load_yaml(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config at {path} must be a mapping, got: {type(loaded).__name__}")
    return dict(loaded)


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name: str, default: float | None = None) -> float | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class EstimatorConfig:
    region_allowlist: tuple[str, ...]
    fresh_days: int
    stale_days: int
    confidence_saturation_n: int
    persona_category_map: dict[str, Any]

    recency_floor: float = 0.5
    dispersion_penalty: float = 0.5
    default_window_days: int = 180
    max_workers: int = 4
    deadline_seconds: float | None = 10.0
    currency: str = "AED"
    annual_units: tuple[str, ...] = ("year", "yearly", "annual", "aed/year")
    recommendation_rules: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.region_allowlist:
            raise ValueError("region_allowlist must name at least one region")
        if self.fresh_days < 0:
            raise ValueError(f"fresh_days must be >= 0, got {self.fresh_days}")
        if self.stale_days <= self.fresh_days:
            raise ValueError(
                f"stale_days must be greater than fresh_days, got fresh={self.fresh_days} stale={self.stale_days}"
            )
        if self.confidence_saturation_n <= 0:
            raise ValueError(f"confidence_saturation_n must be > 0, got {self.confidence_saturation_n}")
        if not 0.0 <= self.recency_floor <= 1.0:
            raise ValueError(f"recency_floor must be within [0, 1], got {self.recency_floor}")
        if self.dispersion_penalty < 0:
            raise ValueError(f"dispersion_penalty must be >= 0, got {self.dispersion_penalty}")
        if self.default_window_days <= 0:
            raise ValueError(f"default_window_days must be > 0, got {self.default_window_days}")
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be > 0, got {self.max_workers}")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError(f"deadline_seconds must be > 0 when set, got {self.deadline_seconds}")

    def canonical_region(self, region: str) -> str | None:
        if not isinstance(region, str):
            return None
        wanted = region.strip().lower()
        for allowed in self.region_allowlist:
            if allowed.lower() == wanted:
                return allowed
        return None

    def require_region(self, region: str) -> str:
        """Return the allow-list spelling of `region` or raise RegionNotSupportedError."""

        canonical = self.canonical_region(region)
        if canonical is None:
            raise RegionNotSupportedError(str(region), self.region_allowlist)
        return canonical

    def to_dict(self) -> dict[str, Any]:
        return {
            "region_allowlist": list(self.region_allowlist),
            "fresh_days": self.fresh_days,
            "stale_days": self.stale_days,
            "confidence_saturation_n": self.confidence_saturation_n,
            "recency_floor": self.recency_floor,
            "dispersion_penalty": self.dispersion_penalty,
            "default_window_days": self.default_window_days,
            "max_workers": self.max_workers,
            "deadline_seconds": self.deadline_seconds,
            "currency": self.currency,
            "annual_units": list(self.annual_units),
            "persona_map_version": str(self.persona_category_map.get("map_version", "")),
            "recommendation_rule_count": len(self.recommendation_rules),
        }


def _resolve_persona_map(raw: Any, config_path: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        candidate = Path(raw)
        if not candidate.is_absolute() and not candidate.exists():
            candidate = Path(config_path).resolve().parent / raw
        return _load_yaml(str(candidate))
    raise ValueError("persona_category_map must be a mapping or a path to a YAML file")


def load_estimator_config(*, config_path: str = "configs/estimator.yaml") -> EstimatorConfig:
    cfg = _load_yaml(config_path)
    missing = REQUIRED_CONFIG_KEYS.difference(cfg.keys())
    if missing:
        raise ValueError(f"Config file {config_path} missing required keys: {sorted(missing)}")

    persona_map_raw = _env_str("ESTIMATOR_PERSONA_MAP_PATH", None) or cfg["persona_category_map"]
    persona_category_map = _resolve_persona_map(persona_map_raw, config_path)

    region_allowlist = _env_list("ESTIMATOR_REGION_ALLOWLIST", [str(item) for item in cfg["region_allowlist"]])
    fresh_days = int(_env_int("ESTIMATOR_FRESH_DAYS", int(cfg["fresh_days"])))
    stale_days = int(_env_int("ESTIMATOR_STALE_DAYS", int(cfg["stale_days"])))
    saturation_n = int(_env_int("ESTIMATOR_CONFIDENCE_SATURATION_N", int(cfg["confidence_saturation_n"])))
    recency_floor = float(_env_float("ESTIMATOR_RECENCY_FLOOR", float(cfg.get("recency_floor", 0.5))))
    dispersion_penalty = float(_env_float("ESTIMATOR_DISPERSION_PENALTY", float(cfg.get("dispersion_penalty", 0.5))))
    default_window_days = int(_env_int("ESTIMATOR_WINDOW_DAYS", int(cfg.get("default_window_days", 180))))
    max_workers = int(_env_int("ESTIMATOR_MAX_WORKERS", int(cfg.get("max_workers", 4))))

    raw_deadline = cfg.get("deadline_seconds", 10.0)
    deadline_seconds = _env_float("ESTIMATOR_DEADLINE_SECONDS", float(raw_deadline) if raw_deadline is not None else None)

    currency = str(_env_str("ESTIMATOR_CURRENCY", str(cfg.get("currency", "AED"))))
    annual_units = tuple(str(unit).lower() for unit in cfg.get("annual_units", EstimatorConfig.annual_units))

    rules = cfg.get("recommendation_rules", []) or []
    if not isinstance(rules, list):
        raise ValueError("recommendation_rules must be a list of mappings")

    return EstimatorConfig(
        region_allowlist=tuple(region_allowlist),
        fresh_days=fresh_days,
        stale_days=stale_days,
        confidence_saturation_n=saturation_n,
        persona_category_map=persona_category_map,
        recency_floor=recency_floor,
        dispersion_penalty=dispersion_penalty,
        default_window_days=default_window_days,
        max_workers=max_workers,
        deadline_seconds=deadline_seconds,
        currency=currency,
        annual_units=annual_units,
        recommendation_rules=tuple(dict(rule) for rule in rules),
    )
