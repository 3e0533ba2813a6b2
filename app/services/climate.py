"""Geocoding via Nominatim and yearly climate summaries via the Open-Meteo archive."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Sequence

from app.core.exceptions import CollaboratorUnavailable, LookupNotFoundError
from app.graphs.metrics_blender import clamp_score, round_half_up
from app.graphs.schemas import ClimateMetrics, Coordinates
from app.services.http_retry import RetryingJsonClient

logger = logging.getLogger(__name__)

RAIN_DAY_MM = 1.0
SUNNY_DAY_SECONDS = 8 * 3600


def season_for(day: date) -> str:
    if 3 <= day.month <= 5:
        return "spring"
    if 6 <= day.month <= 8:
        return "summer"
    if 9 <= day.month <= 11:
        return "autumn"
    return "winter"


def comfort_index(avg_temp_c: float, rain_days: int, sunny_days: int, total_days: int) -> float:
    """Mean of temperature, rain and sunshine comfort, each on a 0-10 scale."""
    if avg_temp_c < 10 or avg_temp_c > 30:
        temp_comfort = 3.0
    elif avg_temp_c < 15 or avg_temp_c > 25:
        temp_comfort = 7.0
    else:
        temp_comfort = 10.0
    total = max(1, total_days)
    rain_comfort = max(0.0, 10.0 - rain_days / total * 20.0)
    sun_comfort = min(10.0, sunny_days / total * 20.0)
    return clamp_score(round_half_up((temp_comfort + rain_comfort + sun_comfort) / 3.0))


def summarize_daily(daily: dict[str, Sequence[float | None]], today: date) -> ClimateMetrics:
    temps = [t or 0.0 for t in daily.get("temperature_2m_mean") or []]
    precipitation = daily.get("precipitation_sum") or []
    sunshine = daily.get("sunshine_duration") or []

    avg_temp_c = sum(temps) / len(temps) if temps else 15.0
    rain_days = sum(1 for p in precipitation if (p or 0.0) > RAIN_DAY_MM)
    sunny_days = sum(1 for s in sunshine if (s or 0.0) > SUNNY_DAY_SECONDS)
    return ClimateMetrics(
        avg_temp_c=round_half_up(avg_temp_c),
        avg_temp_f=round_half_up(avg_temp_c * 9 / 5 + 32),
        rain_days=rain_days,
        sunny_days=sunny_days,
        season=season_for(today),
        comfort_index=comfort_index(avg_temp_c, rain_days, sunny_days, len(temps)),
    )


class OpenMeteoClimateProvider:
    def __init__(
        self,
        geocoder: RetryingJsonClient,
        archive: RetryingJsonClient,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._geocoder = geocoder
        self._archive = archive
        self._today = today

    def geocode(self, city: str, country: str | None = None) -> Coordinates:
        query = f"{city}, {country}" if country else city
        results = self._geocoder.get_json_list(
            "/search",
            params={"q": query, "format": "json", "limit": 1, "addressdetails": 1},
        )
        if not results:
            raise LookupNotFoundError(f"Coordinates not found for city: {query}", collaborator="nominatim")
        try:
            first = results[0]
            return Coordinates(lat=float(first["lat"]), lon=float(first["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise CollaboratorUnavailable(
                f"Malformed geocoding result for {query}",
                collaborator="nominatim",
            ) from exc

    def climate_at(self, lat: float, lon: float) -> ClimateMetrics:
        today = self._today()
        last_year = today.year - 1
        payload = self._archive.get_json_object(
            "/archive",
            params={
                "latitude": f"{lat:.6f}",
                "longitude": f"{lon:.6f}",
                "start_date": f"{last_year}-01-01",
                "end_date": f"{last_year}-12-31",
                "daily": "temperature_2m_mean,precipitation_sum,sunshine_duration",
                "timezone": "UTC",
            },
        )
        daily = payload.get("daily")
        if not daily:
            raise LookupNotFoundError(f"No climate data at {lat:.2f},{lon:.2f}", collaborator="open-meteo")
        try:
            return summarize_daily(daily, today)
        except (AttributeError, TypeError, ValueError) as exc:
            raise CollaboratorUnavailable(
                f"Malformed climate series at {lat:.2f},{lon:.2f}",
                collaborator="open-meteo",
            ) from exc
