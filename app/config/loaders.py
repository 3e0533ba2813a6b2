from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class OccupationEntry(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    category: str = Field(min_length=1)
    education_typical: str = Field(min_length=1)
    base_salary_usd: int = Field(gt=0)
    growth_outlook: Literal["declining", "stable", "growing", "rapid"]
    automation_risk: Literal["low", "medium", "high"]
    work_life_balance: float = Field(ge=0.0, le=10.0)
    stress_level: float = Field(ge=0.0, le=10.0)
    demand_index: float = Field(ge=0.0, le=10.0)
    skills_required: list[str] = Field(default_factory=list)
    tasks_typical: list[str] = Field(default_factory=list)


class OccupationCatalogV1(BaseModel):
    version: str
    default: OccupationEntry
    occupations: list[OccupationEntry] = Field(min_length=1)


class CountryAdjustment(BaseModel):
    countries: list[str] = Field(min_length=1)
    scores: dict[str, float]


class MajorCityAdjustment(BaseModel):
    score: str = Field(min_length=1)
    delta: float
    minimum: float | None = None
    maximum: float | None = None


class ClimateFallback(BaseModel):
    avg_temp_c: float
    avg_temp_f: float
    rain_days: int = Field(ge=0)
    sunny_days: int = Field(ge=0)
    season: str
    comfort_index: float = Field(ge=0.0, le=10.0)


class CityFallbacksV1(BaseModel):
    version: str
    base_scores: dict[str, float]
    country_adjustments: list[CountryAdjustment] = Field(default_factory=list)
    major_cities: list[str] = Field(default_factory=list)
    major_city_adjustments: list[MajorCityAdjustment] = Field(default_factory=list)
    climate: ClimateFallback


_CONFIG_DIR = Path(__file__).parent


def clear_config_cache():
    """Clear all cached config data. Call this to force config reload."""
    load_occupation_catalog_v1.cache_clear()
    load_city_fallbacks_v1.cache_clear()


def find_occupation(name: str | None) -> OccupationEntry:
    """Return the first catalog entry whose keyword appears in `name`, else the default."""
    catalog = load_occupation_catalog_v1()
    lowered = (name or "").lower()
    for entry in catalog.occupations:
        if any(keyword in lowered for keyword in entry.keywords):
            return entry
    return catalog.default


def fallback_city_scores(city: str | None, country: str | None) -> dict[str, float]:
    """Pattern-based scores used when no location provider answered."""
    table = load_city_fallbacks_v1()
    scores = dict(table.base_scores)
    country_key = (country or "").strip().lower()
    for adjustment in table.country_adjustments:
        if country_key in adjustment.countries:
            scores.update(adjustment.scores)
            break
    if (city or "").strip().lower() in table.major_cities:
        for rule in table.major_city_adjustments:
            value = scores.get(rule.score, 5.0) + rule.delta
            if rule.maximum is not None:
                value = min(rule.maximum, value)
            if rule.minimum is not None:
                value = max(rule.minimum, value)
            scores[rule.score] = value
    return scores


@lru_cache(maxsize=1)
def load_occupation_catalog_v1() -> OccupationCatalogV1:
    """Load occupation reference data."""
    path = _CONFIG_DIR / "occupation_catalog_v1.json"
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return OccupationCatalogV1.model_validate(data)


@lru_cache(maxsize=1)
def load_city_fallbacks_v1() -> CityFallbacksV1:
    """Load the city score and climate fallback table."""
    path = _CONFIG_DIR / "city_fallbacks_v1.json"
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return CityFallbacksV1.model_validate(data)
