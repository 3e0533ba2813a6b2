from __future__ import annotations

from app.config.loaders import OccupationEntry, find_occupation, load_occupation_catalog_v1
from app.graphs.schemas import OccupationMetrics


def to_metrics(name: str, entry: OccupationEntry) -> OccupationMetrics:
    return OccupationMetrics(
        name=name,
        category=entry.category,
        demand_index=entry.demand_index,
        education_typical=entry.education_typical,
        skills_required=list(entry.skills_required),
        tasks_typical=list(entry.tasks_typical),
        growth_outlook=entry.growth_outlook,
        automation_risk=entry.automation_risk,
        work_life_balance=entry.work_life_balance,
        stress_level=entry.stress_level,
    )


def default_occupation_metrics(name: str) -> OccupationMetrics:
    return to_metrics(name, load_occupation_catalog_v1().default)


def base_salary_for(name: str) -> int:
    return find_occupation(name).base_salary_usd


class CatalogOccupationProvider:
    """Occupation metrics from the bundled keyword catalog."""

    def lookup(self, name: str) -> OccupationMetrics:
        return to_metrics(name, find_occupation(name))
