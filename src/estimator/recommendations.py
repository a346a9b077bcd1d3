# This module turns a finished breakdown into short, config-driven budgeting recommendations.
# Rules name a category, a maximum share of the total point estimate, and optional persona conditions.
# Rules are evaluated in config order and each fires at most once.
# When nothing fires a single "balanced" note is returned so callers always have something to show.

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from src.estimator.models import CategoryEstimate, PersonaInput

BALANCED_RECOMMENDATION = (
    "Mix looks balanced for this lifestyle. Track actual invoices for two months to calibrate further."
)


def _persona_matches(rule: dict[str, Any], persona: PersonaInput) -> bool:
    conditions = dict(rule.get("when", {}) or {})
    values = persona.dimension_values()
    for dimension, allowed in conditions.items():
        allowed_values = {str(item).lower() for item in list(allowed)}
        if str(values.get(str(dimension), "")).lower() not in allowed_values:
            return False
    return True


def build_recommendations(
    *,
    categories: Sequence[CategoryEstimate],
    persona: PersonaInput,
    rules: Sequence[dict[str, Any]],
) -> tuple[str, ...]:
    total = sum((estimate.point_estimate for estimate in categories), Decimal("0"))
    if total <= 0:
        return ()

    shares = {estimate.category: estimate.point_estimate / total for estimate in categories}
    messages: list[str] = []
    for rule in rules:
        category = str(rule.get("category", ""))
        if category not in shares:
            continue
        if not _persona_matches(rule, persona):
            continue
        max_share = Decimal(str(rule.get("max_share", 1)))
        message = str(rule.get("message", "")).strip()
        if shares[category] > max_share and message and message not in messages:
            messages.append(message)

    if not messages:
        messages.append(BALANCED_RECOMMENDATION)
    return tuple(messages)
