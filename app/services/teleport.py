"""City livability scores from the Teleport urban-area API."""

from __future__ import annotations

import logging
import re
from typing import Any

from app.core.exceptions import CollaboratorError, CollaboratorUnavailable, LookupNotFoundError
from app.graphs.schemas import CityScores, LocationLookup
from app.services.http_retry import RetryingJsonClient

logger = logging.getLogger(__name__)

_SCORE_KEYS = {
    "Cost of Living": "cost_of_living",
    "Safety": "safety",
    "Housing": "housing",
    "Healthcare": "healthcare",
    "Education": "education",
    "Leisure & Culture": "leisure",
    "Tolerance": "tolerance",
    "Commute": "commute",
    "Business Freedom": "business",
    "Economy": "economy",
}

_MAX_SEARCH_RESULTS = 5


def _score_key(category_name: str) -> str:
    return _SCORE_KEYS.get(category_name) or re.sub(r"[^a-z0-9]", "", category_name.lower())


def map_scores(payload: dict[str, Any]) -> CityScores:
    """Convert a Teleport scores document into 0-10 scores, 5.0 where missing."""
    values: dict[str, float] = {}
    for category in payload.get("categories") or []:
        key = _score_key(str(category.get("name", "")))
        score = category.get("score_out_of_10")
        if key in CityScores.model_fields and isinstance(score, (int, float)):
            values[key] = round(min(10.0, max(0.0, float(score))), 1)
    overall = payload.get("teleport_city_score")
    if isinstance(overall, (int, float)):
        # teleport_city_score is reported on a 0-100 scale
        values["overall"] = round(min(10.0, max(0.0, float(overall) / 10.0)), 1)
    return CityScores(**values)


def _detail_value(details: dict[str, Any], category_id: str, item_id: str) -> dict[str, Any] | None:
    for category in details.get("categories") or []:
        if str(category.get("id", "")).lower() != category_id:
            continue
        for item in category.get("data") or []:
            if str(item.get("id", "")).lower() == item_id:
                return item
    return None


def _href(links: Any, rel: str) -> str | None:
    if not isinstance(links, dict):
        return None
    link = links.get(rel)
    if isinstance(link, dict):
        return link.get("href")
    return None


class TeleportLocationProvider:
    def __init__(self, client: RetryingJsonClient) -> None:
        self._client = client

    def lookup(self, city: str, country: str | None = None) -> LocationLookup:
        urban_areas = self._search_urban_areas(city)
        target = self._pick_urban_area(urban_areas, city, country)
        slug = target.get("slug")
        if not slug:
            raise LookupNotFoundError(f"Urban area for {city} has no slug", collaborator="teleport")
        scores = self._client.get_json_object(f"/urban_areas/slug:{slug}/scores/")
        details = self._details_or_empty(slug)

        try:
            population = _detail_value(details, "demographics", "population")
            timezone = _detail_value(details, "geography", "timezone")
            detail_country = _detail_value(details, "geography", "country")
            return LocationLookup(
                name=target.get("name") or city,
                country=country or (detail_country or {}).get("name") or "Unknown",
                scores=map_scores(scores),
                population=int(population["value"]) if population and population.get("value") else None,
                timezone=(timezone or {}).get("name"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CollaboratorUnavailable(
                f"Malformed urban area document for {slug}",
                collaborator="teleport",
            ) from exc

    def _search_urban_areas(self, query: str) -> list[dict[str, Any]]:
        payload = self._client.get_json_object("/cities/", params={"search": query})
        embedded = payload.get("_embedded")
        results = embedded.get("city:search-results") if isinstance(embedded, dict) else None
        if results is None:
            results = []
        if not isinstance(results, list):
            raise CollaboratorUnavailable(f"Malformed search results for {query}", collaborator="teleport")
        urban_areas: list[dict[str, Any]] = []
        for result in results[:_MAX_SEARCH_RESULTS]:
            if not isinstance(result, dict):
                continue
            city_href = _href(result.get("_links"), "city:item")
            if not city_href:
                continue
            try:
                city_doc = self._client.get_json_object(city_href)
                area_href = _href(city_doc.get("_links"), "city:urban_area")
                if area_href:
                    urban_areas.append(self._client.get_json_object(area_href))
            except CollaboratorError as exc:
                logger.warning(
                    "teleport.search skipped result=%s error=%s",
                    result.get("matching_full_name"),
                    exc,
                )
        return urban_areas

    @staticmethod
    def _pick_urban_area(
        urban_areas: list[dict[str, Any]],
        city: str,
        country: str | None,
    ) -> dict[str, Any]:
        needle = city.lower()

        def name_matches(area: dict[str, Any]) -> bool:
            return needle in str(area.get("name", "")).lower() or needle in str(area.get("full_name", "")).lower()

        if country:
            for area in urban_areas:
                if name_matches(area) and country.lower() in str(area.get("full_name", "")).lower():
                    return area
        for area in urban_areas:
            if name_matches(area):
                return area
        if urban_areas:
            logger.warning("teleport.lookup using first search result for city=%s", city)
            return urban_areas[0]
        raise LookupNotFoundError(f"City not found: {city}", collaborator="teleport")

    def _details_or_empty(self, slug: str) -> dict[str, Any]:
        try:
            return self._client.get_json_object(f"/urban_areas/slug:{slug}/details/")
        except CollaboratorError as exc:
            logger.warning("teleport.details unavailable slug=%s error=%s", slug, exc)
            return {}
