from __future__ import annotations

import enum
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ChoiceKind(str, enum.Enum):
    CAREER = "career_change"
    LOCATION = "location_change"
    EDUCATION = "education_change"
    LIFESTYLE = "lifestyle_change"
    PERSONALITY = "personality_change"
    RELATIONSHIP = "relationship_change"


_KIND_LABELS = {
    ChoiceKind.CAREER: "Career",
    ChoiceKind.LOCATION: "Location",
    ChoiceKind.EDUCATION: "Education",
    ChoiceKind.LIFESTYLE: "Lifestyle",
    ChoiceKind.PERSONALITY: "Personality",
    ChoiceKind.RELATIONSHIP: "Relationship",
}


class LocationChange(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    city: str | None = Field(default=None, max_length=100)
    country: str | None = Field(default=None, max_length=100)

    @field_validator("city", "country", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        return _blank_to_none(value)

    def is_empty(self) -> bool:
        return not (self.city or self.country)

    def describe(self) -> str:
        return ", ".join(part for part in (self.city, self.country) if part)


class ChoiceDimension(BaseModel):
    """One populated dimension of a choice, tagged with its kind."""

    model_config = ConfigDict(frozen=True)

    kind: ChoiceKind
    value: str

    def describe(self) -> str:
        return f"{_KIND_LABELS[self.kind]}: {self.value}"


class Choice(BaseModel):
    """A sparse decision record with at most one value per dimension."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    career_change: str | None = Field(default=None, max_length=200)
    location_change: LocationChange | None = None
    education_change: str | None = Field(default=None, max_length=200)
    lifestyle_change: str | None = Field(default=None, max_length=200)
    personality_change: str | None = Field(default=None, max_length=200)
    relationship_change: str | None = Field(default=None, max_length=200)

    @field_validator(
        "career_change",
        "education_change",
        "lifestyle_change",
        "personality_change",
        "relationship_change",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("location_change", mode="after")
    @classmethod
    def drop_empty_location(cls, value: LocationChange | None) -> LocationChange | None:
        if value is not None and value.is_empty():
            return None
        return value

    def dimensions(self) -> list[ChoiceDimension]:
        dims: list[ChoiceDimension] = []
        for kind in ChoiceKind:
            raw = getattr(self, kind.value)
            if raw is None:
                continue
            value = raw.describe() if isinstance(raw, LocationChange) else raw
            dims.append(ChoiceDimension(kind=kind, value=value))
        return dims

    def is_empty(self) -> bool:
        return not self.dimensions()

    def describe(self) -> str:
        return "; ".join(dim.describe() for dim in self.dimensions())

    def merged_over(self, other: Choice) -> Choice:
        """Return a choice where this record's populated fields win over `other`."""
        values = {}
        for kind in ChoiceKind:
            mine = getattr(self, kind.value)
            values[kind.value] = mine if mine is not None else getattr(other, kind.value)
        return Choice(**values)


class RawChoice(Choice):
    """Choice as submitted by a caller, optionally carrying free text."""

    text: str | None = Field(default=None, max_length=1000)

    @field_validator("text", mode="before")
    @classmethod
    def blank_text_to_none(cls, value: object) -> object:
        return _blank_to_none(value)

    def structured(self) -> Choice:
        return Choice(**self.model_dump(exclude={"text"}))


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class CityScores(BaseModel):
    cost_of_living: float = Field(default=5.0, ge=0, le=10)
    safety: float = Field(default=5.0, ge=0, le=10)
    housing: float = Field(default=5.0, ge=0, le=10)
    healthcare: float = Field(default=5.0, ge=0, le=10)
    education: float = Field(default=5.0, ge=0, le=10)
    leisure: float = Field(default=5.0, ge=0, le=10)
    tolerance: float = Field(default=5.0, ge=0, le=10)
    commute: float = Field(default=5.0, ge=0, le=10)
    business: float = Field(default=5.0, ge=0, le=10)
    economy: float = Field(default=5.0, ge=0, le=10)
    overall: float = Field(default=5.0, ge=0, le=10)


class ClimateMetrics(BaseModel):
    avg_temp_c: float
    avg_temp_f: float
    rain_days: int = Field(ge=0)
    sunny_days: int = Field(ge=0)
    season: str
    comfort_index: float = Field(ge=0, le=10)


class LocationLookup(BaseModel):
    """What a location metrics provider returns for a city query."""

    name: str
    country: str
    coordinates: Coordinates | None = None
    scores: CityScores
    population: int | None = None
    timezone: str | None = None


class CityMetrics(LocationLookup):
    climate: ClimateMetrics


GrowthOutlook = Literal["declining", "stable", "growing", "rapid"]
Level = Literal["low", "medium", "high"]


class OccupationMetrics(BaseModel):
    name: str
    category: str
    demand_index: float = Field(ge=0, le=10)
    education_typical: str
    skills_required: list[str] = Field(default_factory=list)
    tasks_typical: list[str] = Field(default_factory=list)
    growth_outlook: GrowthOutlook = "stable"
    automation_risk: Level = "medium"
    work_life_balance: float = Field(ge=0, le=10)
    stress_level: float = Field(ge=0, le=10)


class FinancialMetrics(BaseModel):
    salary_low_usd: int
    salary_high_usd: int
    salary_median_usd: int
    col_index: float
    currency: str = "USD"
    savings_potential: float = Field(ge=0, le=10)
    retirement_age: int = 65
    financial_security: Level


class CompositeIndices(BaseModel):
    quality_of_life_index: float = Field(ge=0, le=10)
    happiness_score: float = Field(ge=0, le=10)
    work_life_balance: float = Field(ge=0, le=10)
    health_index: float = Field(ge=0, le=10)
    social_index: float = Field(ge=0, le=10)
    creativity_index: float = Field(ge=0, le=10)
    adventure_index: float = Field(ge=0, le=10)


class NodeMetrics(CompositeIndices):
    city: CityMetrics
    occupation: OccupationMetrics
    finances: FinancialMetrics

    def indices(self) -> CompositeIndices:
        return CompositeIndices(**self.model_dump(include=set(CompositeIndices.model_fields)))


class CoverImage(BaseModel):
    url: str
    alt: str
    credit: str
    source: Literal["unsplash", "placeholder"] = "unsplash"


class Chapter(BaseModel):
    title: str = Field(min_length=1)
    text: str = Field(min_length=1)
    year_range: str
    highlights: list[str] = Field(default_factory=list)


class Milestone(BaseModel):
    year: int = Field(ge=0)
    event: str = Field(min_length=1)
    significance: Level = "medium"
    category: Literal["career", "personal", "financial", "health", "relationship"] = "personal"


Tone = Literal["optimistic", "realistic", "cautious", "balanced"]


class Narrative(BaseModel):
    summary: str = Field(min_length=1)
    chapters: list[Chapter] = Field(min_length=1)
    milestones: list[Milestone]
    tone: Tone = "balanced"
    confidence_score: float = Field(default=0.5, ge=0, le=1)
    disclaimers: list[str] = Field(default_factory=list)


class BaseContext(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    age: int | None = Field(default=None, ge=16, le=80)
    country: str | None = Field(default=None, max_length=100)
    current_career: str | None = Field(default=None, max_length=200)
    current_city: str | None = Field(default=None, max_length=100)
    current_education: str | None = Field(default=None, max_length=200)
    values: list[str] = Field(default_factory=list)
    risk_tolerance: Level | None = None


class UserPreferences(BaseModel):
    tone: Tone | None = None
    focus_areas: list[str] = Field(default_factory=list, max_length=5)
    time_horizon: int | None = Field(default=None, ge=1, le=50)


class ResolvedMetrics(BaseModel):
    """Raw lookup results before blending, plus which collaborators fell back."""

    city: CityMetrics
    occupation: OccupationMetrics
    finances: FinancialMetrics
    cover_image: CoverImage
    fallbacks: list[str] = Field(default_factory=list)


class ParentSnapshot(BaseModel):
    node_id: uuid.UUID
    depth: int
    choice: Choice
    metrics: NodeMetrics
    narrative_summary: str = ""
    previous_choices: list[str] = Field(default_factory=list)
