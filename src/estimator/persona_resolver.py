# This module maps a persona onto the categories, sub-category filters, and weights it needs.
# It exists so persona logic is data (a YAML lookup table) rather than branching spread over call sites.
# The table is parsed and validated once; resolving a persona is then a pure dictionary walk.
# Adding a category or a new housing/lifestyle/transport value is a config change only.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.estimator.errors import InvalidPersonaError
from src.estimator.estimator_config import EstimatorConfig
from src.estimator.models import CategoryFilter, PersonaInput, SubCategoryFilter

DIMENSIONS: tuple[str, ...] = ("housing_type", "lifestyle_tier", "transport_mode")
REQUIRED_TABLE_KEYS = {"categories", "dimensions"}


@dataclass(frozen=True)
class _Contribution:
    sub_categories: tuple[SubCategoryFilter, ...]
    weight_multiplier: float


@dataclass(frozen=True)
class ResolvedPersona:
    persona: PersonaInput
    categories: tuple[CategoryFilter, ...]

    @property
    def category_names(self) -> tuple[str, ...]:
        return tuple(item.category for item in self.categories)

    def weights(self) -> dict[str, float]:
        return {item.category: item.weight for item in self.categories}


def _positive_float(value: Any, where: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: weight must be numeric, got {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{where}: weight must be > 0, got {parsed}")
    return parsed


def _parse_sub_categories(raw: Any, where: str) -> tuple[SubCategoryFilter, ...]:
    if raw is None:
        return ()
    if isinstance(raw, dict):
        return tuple(
            SubCategoryFilter(name=str(name), weight=_positive_float(weight, f"{where}.{name}"))
            for name, weight in raw.items()
        )
    if isinstance(raw, list):
        return tuple(SubCategoryFilter(name=str(name)) for name in raw)
    raise ValueError(f"{where}: sub_categories must be a list or a name->share mapping")


class PersonaResolver:
    """Lookup-table backed persona resolution."""

    def __init__(self, table: dict[str, Any]) -> None:
        missing = REQUIRED_TABLE_KEYS.difference(table.keys())
        if missing:
            raise ValueError(f"Persona category map missing required keys: {sorted(missing)}")

        self.map_version = str(table.get("map_version", ""))
        self._base_weights: dict[str, float] = {}
        for entry in list(table["categories"]):
            name = str(entry["name"])
            if name in self._base_weights:
                raise ValueError(f"Persona category map declares category {name!r} twice")
            self._base_weights[name] = _positive_float(entry.get("weight", 1.0), f"categories.{name}")
        if not self._base_weights:
            raise ValueError("Persona category map must declare at least one category")

        dimensions = dict(table["dimensions"])
        self._dimensions: dict[str, dict[str, dict[str, _Contribution]]] = {}
        for dimension in DIMENSIONS:
            values = dimensions.get(dimension)
            if not values:
                raise ValueError(f"Persona category map has no values for dimension {dimension!r}")
            self._dimensions[dimension] = {
                str(value): self._parse_value(dimension, str(value), blocks) for value, blocks in dict(values).items()
            }

    @classmethod
    def from_config(cls, config: EstimatorConfig) -> PersonaResolver:
        return cls(config.persona_category_map)

    def _parse_value(self, dimension: str, value: str, blocks: Any) -> dict[str, _Contribution]:
        parsed: dict[str, _Contribution] = {}
        for category, block in dict(blocks or {}).items():
            where = f"dimensions.{dimension}.{value}.{category}"
            if category not in self._base_weights:
                raise ValueError(f"{where}: category {category!r} is not declared in categories")
            block = dict(block or {})
            parsed[str(category)] = _Contribution(
                sub_categories=_parse_sub_categories(block.get("sub_categories"), where),
                weight_multiplier=_positive_float(block.get("weight", 1.0), where),
            )
        return parsed

    @property
    def known_categories(self) -> tuple[str, ...]:
        return tuple(self._base_weights)

    def allowed_values(self, dimension: str) -> tuple[str, ...]:
        return tuple(self._dimensions[dimension])

    def _canonical_value(self, dimension: str, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for allowed in self._dimensions[dimension]:
            if allowed.lower() == wanted:
                return allowed
        return None

    def validate(self, persona: PersonaInput) -> PersonaInput:
        """Return the persona with canonical spellings, or raise listing every bad field."""

        problems: list[str] = []
        canonical: dict[str, str] = {}
        for dimension, value in persona.dimension_values().items():
            resolved = self._canonical_value(dimension, value)
            if resolved is None:
                allowed = ", ".join(self.allowed_values(dimension))
                problems.append(f"unsupported {dimension} {value!r} (expected one of: {allowed})")
            else:
                canonical[dimension] = resolved
        if problems:
            raise InvalidPersonaError(problems)
        return PersonaInput(**canonical)

    def resolve(self, persona: PersonaInput) -> ResolvedPersona:
        canonical = self.validate(persona)
        selected = canonical.dimension_values()

        merged_subs: dict[str, list[SubCategoryFilter]] = {}
        multipliers: dict[str, float] = {}
        for dimension in DIMENSIONS:
            for category, contribution in self._dimensions[dimension][selected[dimension]].items():
                subs = merged_subs.setdefault(category, [])
                seen = {item.name.lower() for item in subs}
                subs.extend(item for item in contribution.sub_categories if item.name.lower() not in seen)
                multipliers[category] = multipliers.get(category, 1.0) * contribution.weight_multiplier

        categories = tuple(
            CategoryFilter(
                category=category,
                sub_categories=tuple(merged_subs[category]),
                weight=base_weight * multipliers[category],
            )
            for category, base_weight in self._base_weights.items()
            if category in merged_subs
        )
        return ResolvedPersona(persona=canonical, categories=categories)
