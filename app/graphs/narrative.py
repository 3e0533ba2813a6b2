"""Narrative generation for a node, with a deterministic template fallback.

The prompt context only carries resolved metrics, never raw collaborator
payloads. When the generator is unavailable, returns malformed JSON, or
returns a document that does not validate, the coordinator builds a
three-chapter template narrative from the same facts instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import pydantic

from app.core.exceptions import CollaboratorError
from app.core.metrics import record_collaborator_call, record_narrative_fallback
from app.graphs.schemas import (
    BaseContext,
    Chapter,
    Choice,
    Milestone,
    Narrative,
    NodeMetrics,
    ParentSnapshot,
    UserPreferences,
)

logger = logging.getLogger(__name__)

SUMMARY_EXCERPT_CHARS = 200
FALLBACK_CONFIDENCE = 0.7
FALLBACK_DISCLAIMERS = [
    "This story was assembled from a template because the narrative service was unavailable.",
    "Cost estimates are approximate.",
    "Individual results may vary.",
]


class NarrativeGenerator(Protocol):
    def generate(self, context: dict[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class NarrativeResult:
    narrative: Narrative
    used_fallback: bool
    fallback_reason: str | None = None


def build_parent_context(parent: ParentSnapshot | None) -> dict[str, Any] | None:
    if parent is None:
        return None
    indices = parent.metrics.indices()
    return {
        "depth": parent.depth,
        "summary_excerpt": parent.narrative_summary[:SUMMARY_EXCERPT_CHARS],
        "previous_choices": list(parent.previous_choices),
        **indices.model_dump(),
    }


def build_facts(metrics: NodeMetrics) -> dict[str, Any]:
    city = metrics.city
    occupation = metrics.occupation
    finances = metrics.finances
    return {
        "city": city.name,
        "country": city.country,
        "cost_of_living": city.scores.cost_of_living,
        "safety": city.scores.safety,
        "housing": city.scores.housing,
        "healthcare": city.scores.healthcare,
        "education": city.scores.education,
        "avg_temp_c": city.climate.avg_temp_c,
        "rain_days": city.climate.rain_days,
        "comfort_index": city.climate.comfort_index,
        "occupation": occupation.name,
        "category": occupation.category,
        "demand_index": occupation.demand_index,
        "growth_outlook": occupation.growth_outlook,
        "work_life_balance": occupation.work_life_balance,
        "salary_low_usd": finances.salary_low_usd,
        "salary_high_usd": finances.salary_high_usd,
        "col_index": finances.col_index,
        "currency": finances.currency,
        "quality_of_life_index": metrics.quality_of_life_index,
        "happiness_score": metrics.happiness_score,
        "health_index": metrics.health_index,
        "social_index": metrics.social_index,
    }


def build_context(
    choice: Choice,
    metrics: NodeMetrics,
    parent: ParentSnapshot | None = None,
    preferences: UserPreferences | None = None,
    base_context: BaseContext | None = None,
) -> dict[str, Any]:
    preferences = preferences or UserPreferences()
    return {
        "choice_text": choice.describe(),
        "facts": build_facts(metrics),
        "tone": preferences.tone or "balanced",
        "focus_areas": ", ".join(preferences.focus_areas) or "general focus",
        "time_horizon": preferences.time_horizon,
        "parent": build_parent_context(parent),
        "base_context": base_context.model_dump() if base_context is not None else None,
    }


def fallback_narrative(
    choice: Choice,
    metrics: NodeMetrics,
    parent: ParentSnapshot | None = None,
) -> Narrative:
    occupation = metrics.occupation.name
    city = metrics.city.name
    country = metrics.city.country
    change = choice.describe() or "a new direction"
    median = metrics.finances.salary_median_usd

    if parent is not None:
        happiness = parent.metrics.happiness_score
        summary = (
            f"Building on a previous path where life felt {happiness:.1f}/10 happy, "
            f"you commit to a new change ({change}) and continue as a {occupation} in {city}, {country}."
        )
        titles = ("Transitioning Forward", "Leveraging Experience", "Integrated Mastery")
        openings = (
            f"Leaving the familiar rhythm of the old path behind, I arrive in {city} carrying what I learned before.",
            f"The experience from my earlier life starts paying off as a {occupation}.",
            f"Looking back, the earlier path and this one have merged into something I recognize as mine.",
        )
    else:
        summary = (
            f"You choose a different road ({change}) and build a life as a {occupation} in {city}, {country}. "
            f"It is a path of new opportunities and the ordinary frictions of starting over."
        )
        titles = ("Foundation", "Growth", "Mastery")
        openings = (
            f"The first years in {city} are about finding my footing as a {occupation}.",
            f"With the basics in place, my work as a {occupation} begins to grow in scope.",
            f"By now {city} feels like home and my career has a clear shape.",
        )

    ranges = ("Years 0-3", "Years 4-8", "Years 9-15")
    chapters = [
        Chapter(
            title=f"{year_range}: {title}",
            text=f"{opening} The cost of living in {city} sits at {metrics.city.scores.cost_of_living}/10, "
            f"which shapes how much I can set aside each year.",
            year_range=year_range,
            highlights=[],
        )
        for year_range, title, opening in zip(ranges, titles, openings)
    ]
    milestones = [
        Milestone(year=1, event=f"Start working as a {occupation} in {city}", significance="medium", category="career"),
        Milestone(year=3, event=f"Build a circle of friends in {city}", significance="high", category="personal"),
        Milestone(year=6, event=f"Reach a steady income near ${median:,} a year", significance="medium", category="financial"),
        Milestone(year=10, event=f"Become an established {occupation}", significance="high", category="career"),
    ]
    return Narrative(
        summary=summary,
        chapters=chapters,
        milestones=milestones,
        tone="balanced",
        confidence_score=FALLBACK_CONFIDENCE,
        disclaimers=list(FALLBACK_DISCLAIMERS),
    )


class NarrativeCoordinator:
    def __init__(self, generator: NarrativeGenerator | None = None) -> None:
        self._generator = generator

    def generate(
        self,
        choice: Choice,
        metrics: NodeMetrics,
        parent: ParentSnapshot | None = None,
        preferences: UserPreferences | None = None,
        base_context: BaseContext | None = None,
    ) -> NarrativeResult:
        if self._generator is None:
            return self._fallback(choice, metrics, parent, "not_configured")

        context = build_context(choice, metrics, parent, preferences, base_context)
        try:
            payload = self._generator.generate(context)
            narrative = Narrative.model_validate(payload)
        except CollaboratorError as exc:
            logger.warning("narrative.generate failed collaborator=%s error=%s", exc.collaborator, exc)
            return self._fallback(choice, metrics, parent, type(exc).__name__)
        except pydantic.ValidationError as exc:
            logger.warning("narrative.generate returned invalid document errors=%d", exc.error_count())
            return self._fallback(choice, metrics, parent, "invalid_document")

        record_collaborator_call("narrative", "success")
        return NarrativeResult(narrative=narrative, used_fallback=False)

    def _fallback(
        self,
        choice: Choice,
        metrics: NodeMetrics,
        parent: ParentSnapshot | None,
        reason: str,
    ) -> NarrativeResult:
        record_collaborator_call("narrative", "fallback")
        record_narrative_fallback(reason)
        return NarrativeResult(
            narrative=fallback_narrative(choice, metrics, parent),
            used_fallback=True,
            fallback_reason=reason,
        )
