"""Composite life indices and their continuity blending with the parent node.

Fresh indices are weighted averages of the resolved city, occupation and
financial scores. When a parent exists each index is pulled toward the
parent's value so consecutive nodes change gradually.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.graphs.schemas import (
    CityMetrics,
    CompositeIndices,
    FinancialMetrics,
    OccupationMetrics,
)

NEUTRAL_SCORE = 5.0

QUALITY_OF_LIFE_WEIGHTS = {
    "safety": 0.25,
    "healthcare": 0.20,
    "education": 0.15,
    "leisure": 0.15,
    "work_life_balance": 0.15,
    "savings_potential": 0.10,
}
HAPPINESS_WEIGHTS = {
    "leisure": 0.30,
    "work_life_balance": 0.30,
    "tolerance": 0.20,
    "savings_potential": 0.20,
}
HEALTH_WEIGHTS = {
    "healthcare": 0.40,
    "safety": 0.30,
    "climate_comfort": 0.30,
}
SOCIAL_WEIGHTS = {
    "tolerance": 0.40,
    "leisure": 0.30,
    "work_life_balance": 0.30,
}

# Share of the fresh value kept when blending with the parent.
PARENT_BLEND_WEIGHTS = {
    "quality_of_life_index": 0.7,
    "happiness_score": 0.7,
    "health_index": 0.6,
    "social_index": 0.6,
    "creativity_index": 0.5,
    "adventure_index": 0.5,
}


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def clamp_score(value: float) -> float:
    return min(10.0, max(0.0, value))


def weighted_average(factors: dict[str, float | None], weights: dict[str, float]) -> float:
    """Weighted mean over `weights`; a missing factor counts as the neutral score."""
    total = 0.0
    for name, weight in weights.items():
        value = factors.get(name)
        total += (NEUTRAL_SCORE if value is None else value) * weight
    return total


def blend_with_parent(fresh: float, parent: float | None, weight: float) -> float:
    if parent is None:
        return clamp_score(round_half_up(fresh))
    return clamp_score(round_half_up(fresh * weight + parent * (1 - weight)))


def variability_seed(node_id: object) -> int:
    digest = hashlib.sha256(str(node_id).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


@dataclass(frozen=True)
class FreshIndices:
    quality_of_life_index: float
    happiness_score: float
    work_life_balance: float
    health_index: float
    social_index: float
    creativity_index: float
    adventure_index: float


def compute_fresh(
    city: CityMetrics,
    occupation: OccupationMetrics | None,
    finances: FinancialMetrics,
    rng: random.Random,
    parent_work_life_balance: float | None = None,
) -> FreshIndices:
    if occupation is not None:
        work_life_balance = occupation.work_life_balance
    elif parent_work_life_balance is not None:
        work_life_balance = parent_work_life_balance
    else:
        work_life_balance = NEUTRAL_SCORE

    scores = city.scores
    factors = {
        "safety": scores.safety,
        "healthcare": scores.healthcare,
        "education": scores.education,
        "leisure": scores.leisure,
        "tolerance": scores.tolerance,
        "work_life_balance": work_life_balance,
        "savings_potential": finances.savings_potential,
        "climate_comfort": city.climate.comfort_index,
    }
    return FreshIndices(
        quality_of_life_index=weighted_average(factors, QUALITY_OF_LIFE_WEIGHTS),
        happiness_score=weighted_average(factors, HAPPINESS_WEIGHTS),
        work_life_balance=work_life_balance,
        health_index=weighted_average(factors, HEALTH_WEIGHTS),
        social_index=weighted_average(factors, SOCIAL_WEIGHTS),
        creativity_index=rng.uniform(0.0, 10.0),
        adventure_index=rng.uniform(0.0, 10.0),
    )


def blend(fresh: FreshIndices, parent: CompositeIndices | None) -> CompositeIndices:
    values = asdict(fresh)
    blended: dict[str, float] = {
        # pinned to the occupation, never averaged
        "work_life_balance": clamp_score(round_half_up(values["work_life_balance"])),
    }
    for name, weight in PARENT_BLEND_WEIGHTS.items():
        parent_value = getattr(parent, name) if parent is not None else None
        blended[name] = blend_with_parent(values[name], parent_value, weight)
    return CompositeIndices(**blended)


class MetricsBlender:
    def blend_node(
        self,
        node_id: object,
        city: CityMetrics,
        occupation: OccupationMetrics | None,
        finances: FinancialMetrics,
        parent: CompositeIndices | None = None,
    ) -> CompositeIndices:
        rng = random.Random(variability_seed(node_id))
        fresh = compute_fresh(
            city,
            occupation,
            finances,
            rng,
            parent_work_life_balance=parent.work_life_balance if parent is not None else None,
        )
        return blend(fresh, parent)
