"""Resolve city, climate, occupation and cover-image data for a node.

The four lookups are independent, so they run concurrently on a shared
thread pool. Every lookup is isolated: a collaborator failure or a timeout
is logged and replaced by a documented deterministic fallback, and the
pipeline carries on. Successful lookups are cached by normalized key;
fallback values never are.
"""

from __future__ import annotations

import contextvars
import logging
import re
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar

from app.config.loaders import fallback_city_scores, load_city_fallbacks_v1
from app.core.exceptions import AppError, CollaboratorError
from app.core.metrics import record_collaborator_call
from app.graphs.metrics_blender import round_half_up
from app.graphs.schemas import (
    BaseContext,
    Choice,
    CityMetrics,
    CityScores,
    ClimateMetrics,
    Coordinates,
    CoverImage,
    FinancialMetrics,
    LocationLookup,
    OccupationMetrics,
    ParentSnapshot,
    ResolvedMetrics,
)
from app.services.cache import LookupCache
from app.services.occupations import base_salary_for, default_occupation_metrics
from app.services.unsplash import cover_query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocationMetricsProvider(Protocol):
    def lookup(self, city: str, country: str | None = None) -> LocationLookup: ...


class ClimateProvider(Protocol):
    def geocode(self, city: str, country: str | None = None) -> Coordinates: ...

    def climate_at(self, lat: float, lon: float) -> ClimateMetrics: ...


class OccupationProvider(Protocol):
    def lookup(self, name: str) -> OccupationMetrics: ...


class ImageSearch(Protocol):
    def cover_image(self, query: str) -> CoverImage: ...


@dataclass(frozen=True)
class CacheTtls:
    location: float = 24 * 3600
    geocode: float = 30 * 24 * 3600
    climate: float = 7 * 24 * 3600
    occupation: float = 24 * 3600
    image: float = 24 * 3600


@dataclass(frozen=True)
class ResolverDefaults:
    city: str = "New York"
    country: str = "United States"
    occupation: str = "Software Developer"


def resolve_field(from_choice: T | None, from_parent: T | None, from_base_context: T | None, default: T) -> T:
    """First non-empty value in inheritance order: choice, parent, base context, default."""
    for candidate in (from_choice, from_parent, from_base_context):
        if candidate:
            return candidate
    return default


def resolve_location(
    choice: Choice,
    parent_city: CityMetrics | None,
    base_context: BaseContext | None,
    defaults: ResolverDefaults,
) -> tuple[str, str | None]:
    """Pick the (city, country) pair as one unit so the two never mix sources."""
    from_choice = None
    if choice.location_change is not None:
        loc = choice.location_change
        # a bare country is searched as the place itself
        from_choice = (loc.city or loc.country, loc.country)
    from_parent = (parent_city.name, parent_city.country) if parent_city is not None else None
    from_base = None
    if base_context is not None and (base_context.current_city or base_context.country):
        from_base = (base_context.current_city or base_context.country, base_context.country)
    return resolve_field(from_choice, from_parent, from_base, (defaults.city, defaults.country))


def resolve_occupation_name(
    choice: Choice,
    parent: ParentSnapshot | None,
    base_context: BaseContext | None,
    defaults: ResolverDefaults,
) -> str:
    return resolve_field(
        choice.career_change,
        parent.metrics.occupation.name if parent is not None else None,
        base_context.current_career if base_context is not None else None,
        defaults.occupation,
    )


def derive_finances(occupation_name: str, cost_of_living: float) -> FinancialMetrics:
    base_salary = base_salary_for(occupation_name)
    factor = cost_of_living / 5.0
    if cost_of_living < 6:
        security = "high"
    elif cost_of_living < 8:
        security = "medium"
    else:
        security = "low"
    return FinancialMetrics(
        salary_low_usd=round(base_salary * 0.8 * factor),
        salary_high_usd=round(base_salary * 1.5 * factor),
        salary_median_usd=round(base_salary * factor),
        col_index=cost_of_living,
        currency="USD",
        savings_potential=round_half_up(max(0.0, 10.0 - cost_of_living)),
        retirement_age=65,
        financial_security=security,
    )


def _norm(value: str | None) -> str:
    return (value or "any").strip().lower()


def fallback_location(city: str, country: str | None) -> LocationLookup:
    return LocationLookup(
        name=city,
        country=country or "Unknown",
        scores=CityScores(**fallback_city_scores(city, country)),
    )


def fallback_climate() -> ClimateMetrics:
    return ClimateMetrics.model_validate(load_city_fallbacks_v1().climate.model_dump())


def fallback_cover(query: str) -> CoverImage:
    seed = re.sub(r"[^a-z0-9]+", "-", query.lower()).strip("-") or "life"
    return CoverImage(
        url=f"https://picsum.photos/seed/{seed}/800/600",
        alt=query,
        credit="Photo by Lorem Picsum",
        source="placeholder",
    )


class MetricsResolver:
    def __init__(
        self,
        *,
        location_provider: LocationMetricsProvider | None,
        climate_provider: ClimateProvider | None,
        occupation_provider: OccupationProvider | None,
        image_search: ImageSearch | None,
        cache: LookupCache,
        executor: ThreadPoolExecutor,
        lookup_timeout_seconds: float = 30.0,
        ttls: CacheTtls | None = None,
        defaults: ResolverDefaults | None = None,
    ) -> None:
        self._location_provider = location_provider
        self._climate_provider = climate_provider
        self._occupation_provider = occupation_provider
        self._image_search = image_search
        self._cache = cache
        self._executor = executor
        self._lookup_timeout_seconds = lookup_timeout_seconds
        self._ttls = ttls or CacheTtls()
        self.defaults = defaults or ResolverDefaults()

    def resolve(
        self,
        choice: Choice,
        parent: ParentSnapshot | None = None,
        base_context: BaseContext | None = None,
    ) -> ResolvedMetrics:
        parent_city = parent.metrics.city if parent is not None else None
        city, country = resolve_location(choice, parent_city, base_context, self.defaults)
        occupation_name = resolve_occupation_name(choice, parent, base_context, self.defaults)
        image_query = cover_query(city, occupation_name, choice.lifestyle_change)

        pending: dict[str, tuple[Future | None, Callable[[], Any]]] = {
            "location": (
                self._submit(self._location_provider, lambda p: self._lookup_location(p, city, country)),
                lambda: fallback_location(city, country),
            ),
            "climate": (
                self._submit(self._climate_provider, lambda p: self._lookup_climate(p, city, country)),
                lambda: (None, fallback_climate()),
            ),
            "occupation": (
                self._submit(self._occupation_provider, lambda p: self._lookup_occupation(p, occupation_name)),
                lambda: default_occupation_metrics(occupation_name),
            ),
            "cover_image": (
                self._submit(self._image_search, lambda p: self._lookup_image(p, image_query)),
                lambda: fallback_cover(image_query),
            ),
        }

        deadline = time.monotonic() + self._lookup_timeout_seconds
        results: dict[str, Any] = {}
        fallbacks: list[str] = []
        for name, (future, fallback) in pending.items():
            value = self._await(name, future, deadline)
            if value is None:
                fallbacks.append(name)
                record_collaborator_call(name, "fallback")
                value = fallback()
            results[name] = value

        location: LocationLookup = results["location"]
        coordinates, climate = results["climate"]
        if climate is None:
            fallbacks.append("climate")
            record_collaborator_call("climate", "fallback")
            climate = fallback_climate()
        city_metrics = CityMetrics(
            **location.model_dump(exclude={"coordinates"}),
            coordinates=location.coordinates or coordinates,
            climate=climate,
        )
        finances = derive_finances(occupation_name, city_metrics.scores.cost_of_living)
        return ResolvedMetrics(
            city=city_metrics,
            occupation=results["occupation"],
            finances=finances,
            cover_image=results["cover_image"],
            fallbacks=fallbacks,
        )

    def _submit(self, provider: Any, task: Callable[[Any], Any]) -> Future | None:
        if provider is None:
            return None
        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, task, provider)

    def _await(self, name: str, future: Future | None, deadline: float) -> Any | None:
        if future is None:
            logger.info("metrics.%s not configured, using fallback", name)
            return None
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "metrics.%s timed out after %.1fs, using fallback",
                name,
                self._lookup_timeout_seconds,
            )
        except CollaboratorError as exc:
            logger.warning(
                "metrics.%s failed collaborator=%s error=%s, using fallback",
                name,
                exc.collaborator,
                exc,
            )
        except AppError:
            raise
        except Exception:
            logger.exception("metrics.%s lookup crashed, using fallback", name)
        return None

    def _cached(self, collaborator: str, key: str, ttl: float, fetch: Callable[[], T]) -> T:
        cached = self._cache.get(key)
        if cached is not None:
            record_collaborator_call(collaborator, "cache_hit")
            return cached
        value = fetch()
        self._cache.set(key, value, ttl)
        record_collaborator_call(collaborator, "success")
        return value

    def _lookup_location(
        self,
        provider: LocationMetricsProvider,
        city: str,
        country: str | None,
    ) -> LocationLookup:
        return self._cached(
            "location",
            f"location:{_norm(city)}:{_norm(country)}",
            self._ttls.location,
            lambda: provider.lookup(city, country),
        )

    def _lookup_climate(
        self,
        provider: ClimateProvider,
        city: str,
        country: str | None,
    ) -> tuple[Coordinates, ClimateMetrics | None]:
        """Coordinates plus climate; a failed climate half still returns the coordinates."""
        coordinates = self._cached(
            "geocode",
            f"geocode:{_norm(city)}:{_norm(country)}",
            self._ttls.geocode,
            lambda: provider.geocode(city, country),
        )
        try:
            climate = self._cached(
                "climate",
                f"climate:{coordinates.lat:.2f}:{coordinates.lon:.2f}",
                self._ttls.climate,
                lambda: provider.climate_at(coordinates.lat, coordinates.lon),
            )
        except CollaboratorError as exc:
            logger.warning(
                "metrics.climate failed collaborator=%s error=%s, keeping coordinates",
                exc.collaborator,
                exc,
            )
            return coordinates, None
        return coordinates, climate

    def _lookup_occupation(self, provider: OccupationProvider, name: str) -> OccupationMetrics:
        return self._cached(
            "occupation",
            f"occupation:{_norm(name)}",
            self._ttls.occupation,
            lambda: provider.lookup(name),
        )

    def _lookup_image(self, provider: ImageSearch, query: str) -> CoverImage:
        return self._cached(
            "cover_image",
            f"image:{_norm(query)}",
            self._ttls.image,
            lambda: provider.cover_image(query),
        )
