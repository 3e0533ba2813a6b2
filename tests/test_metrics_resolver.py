"""Tests for concurrent metric resolution, inheritance and fallbacks."""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from app.core.exceptions import CollaboratorUnavailable, LookupNotFoundError
from app.graphs.metrics_resolver import (
    MetricsResolver,
    ResolverDefaults,
    derive_finances,
    fallback_cover,
    resolve_field,
    resolve_location,
)
from app.graphs.schemas import (
    BaseContext,
    CityMetrics,
    CityScores,
    Choice,
    ClimateMetrics,
    CompositeIndices,
    Coordinates,
    CoverImage,
    LocationChange,
    LocationLookup,
    NodeMetrics,
    ParentSnapshot,
)
from app.services.cache import TTLCache
from app.services.climate import OpenMeteoClimateProvider
from app.services.http_retry import RetryingJsonClient
from app.services.occupations import CatalogOccupationProvider
from app.services.teleport import TeleportLocationProvider
from app.services.unsplash import UnsplashImageSearch


class FakeLocationProvider:
    def __init__(self, fail: Exception | None = None) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.fail = fail

    def lookup(self, city, country=None):
        self.calls.append((city, country))
        if self.fail is not None:
            raise self.fail
        return LocationLookup(
            name=city,
            country=country or "Unknown",
            scores=CityScores(safety=8.0, cost_of_living=7.0),
            timezone="Europe/Lisbon",
        )


class FakeClimateProvider:
    def __init__(self) -> None:
        self.geocode_calls = 0
        self.climate_calls = 0

    def geocode(self, city, country=None):
        self.geocode_calls += 1
        return Coordinates(lat=38.72, lon=-9.14)

    def climate_at(self, lat, lon):
        self.climate_calls += 1
        return ClimateMetrics(
            avg_temp_c=18.0,
            avg_temp_f=64.4,
            rain_days=80,
            sunny_days=250,
            season="autumn",
            comfort_index=8.5,
        )


class FakeImageSearch:
    def cover_image(self, query):
        return CoverImage(url="https://images.test/1.jpg", alt=query, credit="Photo by Tester on Unsplash")


class FailingImageSearch:
    def cover_image(self, query):
        raise CollaboratorUnavailable("unsplash down", collaborator="unsplash")


class GeocodeOnlyClimateProvider(FakeClimateProvider):
    def climate_at(self, lat, lon):
        self.climate_calls += 1
        raise CollaboratorUnavailable("archive down", collaborator="open-meteo")


class BlockingLocationProvider:
    def __init__(self) -> None:
        self.release = threading.Event()

    def lookup(self, city, country=None):
        self.release.wait(5)
        raise CollaboratorUnavailable("too late", collaborator="teleport")


@pytest.fixture()
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=False, cancel_futures=True)


def _resolver(executor, cache=None, **providers) -> MetricsResolver:
    options = {
        "location_provider": None,
        "climate_provider": None,
        "occupation_provider": CatalogOccupationProvider(),
        "image_search": None,
    }
    options.update(providers)
    return MetricsResolver(cache=cache if cache is not None else TTLCache(), executor=executor, lookup_timeout_seconds=2.0, **options)


def _parent(city: str = "Lisbon", country: str = "Portugal", occupation: str = "Chef") -> ParentSnapshot:
    metrics = NodeMetrics(
        city=CityMetrics(
            name=city,
            country=country,
            scores=CityScores(),
            climate=ClimateMetrics(
                avg_temp_c=15, avg_temp_f=59, rain_days=120, sunny_days=200, season="temperate", comfort_index=7
            ),
        ),
        occupation=CatalogOccupationProvider().lookup(occupation),
        finances=derive_finances(occupation, 5.0),
        **{name: 6.0 for name in CompositeIndices.model_fields},
    )
    return ParentSnapshot(
        node_id=uuid.uuid4(),
        depth=0,
        choice=Choice(career_change=occupation),
        metrics=metrics,
    )


class TestResolveField:
    def test_first_non_empty_wins(self):
        assert resolve_field(None, "parent", "base", "default") == "parent"
        assert resolve_field("", None, "base", "default") == "base"
        assert resolve_field(None, None, None, "default") == "default"


class TestResolveLocation:
    def test_choice_beats_parent(self):
        choice = Choice(location_change=LocationChange(city="Berlin", country="Germany"))
        assert resolve_location(choice, _parent().metrics.city, None, ResolverDefaults()) == ("Berlin", "Germany")

    def test_inherits_parent_pair(self):
        choice = Choice(career_change="Chef")
        assert resolve_location(choice, _parent().metrics.city, None, ResolverDefaults()) == ("Lisbon", "Portugal")

    def test_base_context_then_default(self):
        choice = Choice(career_change="Chef")
        base = BaseContext(current_city="Austin", country="United States")
        assert resolve_location(choice, None, base, ResolverDefaults()) == ("Austin", "United States")
        assert resolve_location(choice, None, None, ResolverDefaults()) == ("New York", "United States")

    def test_country_only_choice_searches_country(self):
        choice = Choice(location_change=LocationChange(country="Japan"))
        assert resolve_location(choice, None, None, ResolverDefaults()) == ("Japan", "Japan")


class TestDeriveFinances:
    def test_scales_with_cost_of_living(self):
        finances = derive_finances("Software Developer", 5.0)
        assert finances.salary_median_usd == 85000
        assert finances.salary_low_usd == 68000
        assert finances.salary_high_usd == 127500
        assert finances.financial_security == "high"

    def test_expensive_city_lowers_security(self):
        assert derive_finances("Teacher", 8.5).financial_security == "low"
        assert derive_finances("Teacher", 7.0).financial_security == "medium"


class TestMetricsResolver:
    def test_uses_providers_when_available(self, executor):
        location = FakeLocationProvider()
        climate = FakeClimateProvider()
        resolver = _resolver(
            executor,
            location_provider=location,
            climate_provider=climate,
            image_search=FakeImageSearch(),
        )

        result = resolver.resolve(Choice(location_change=LocationChange(city="Lisbon", country="Portugal")))

        assert result.fallbacks == []
        assert result.city.name == "Lisbon"
        assert result.city.scores.safety == 8.0
        assert result.city.coordinates == Coordinates(lat=38.72, lon=-9.14)
        assert result.city.climate.comfort_index == 8.5
        assert result.cover_image.source == "unsplash"
        assert result.finances.col_index == 7.0

    def test_inherits_location_and_career_from_parent(self, executor):
        location = FakeLocationProvider()
        resolver = _resolver(executor, location_provider=location)

        result = resolver.resolve(Choice(lifestyle_change="Minimalist"), parent=_parent())

        assert location.calls == [("Lisbon", "Portugal")]
        assert result.occupation.name == "Chef"
        assert result.city.name == "Lisbon"

    def test_total_outage_uses_fallbacks(self, executor):
        resolver = _resolver(
            executor,
            location_provider=FakeLocationProvider(fail=CollaboratorUnavailable("down", collaborator="teleport")),
            image_search=FailingImageSearch(),
        )

        result = resolver.resolve(Choice(career_change="Chef"))

        assert set(result.fallbacks) == {"location", "climate", "cover_image"}
        assert result.city.name == "New York"
        assert result.city.scores.business == 9.0
        assert result.city.climate.comfort_index == 7.0
        assert result.cover_image.source == "placeholder"
        assert result.occupation.category == "Hospitality"

    def test_not_found_is_absorbed(self, executor):
        resolver = _resolver(
            executor,
            location_provider=FakeLocationProvider(fail=LookupNotFoundError("no city", collaborator="teleport")),
        )
        result = resolver.resolve(Choice(location_change=LocationChange(city="Atlantis")))
        assert "location" in result.fallbacks
        assert result.city.name == "Atlantis"
        assert result.city.country == "Unknown"

    def test_successful_lookups_are_cached(self, executor):
        location = FakeLocationProvider()
        climate = FakeClimateProvider()
        cache = TTLCache()
        resolver = _resolver(executor, cache=cache, location_provider=location, climate_provider=climate)
        choice = Choice(location_change=LocationChange(city="Lisbon", country="Portugal"))

        resolver.resolve(choice)
        resolver.resolve(choice)

        assert len(location.calls) == 1
        assert climate.geocode_calls == 1
        assert climate.climate_calls == 1
        assert cache.has("location:lisbon:portugal")
        assert cache.has("climate:38.72:-9.14")

    def test_fallbacks_are_not_cached(self, executor):
        location = FakeLocationProvider(fail=CollaboratorUnavailable("down", collaborator="teleport"))
        cache = TTLCache()
        resolver = _resolver(executor, cache=cache, location_provider=location)
        choice = Choice(location_change=LocationChange(city="Lisbon", country="Portugal"))

        resolver.resolve(choice)
        resolver.resolve(choice)

        assert len(location.calls) == 2
        assert not cache.has("location:lisbon:portugal")

    def test_slow_lookup_times_out(self, executor):
        blocking = BlockingLocationProvider()
        resolver = MetricsResolver(
            location_provider=blocking,
            climate_provider=None,
            occupation_provider=CatalogOccupationProvider(),
            image_search=None,
            cache=TTLCache(),
            executor=executor,
            lookup_timeout_seconds=0.2,
        )
        try:
            result = resolver.resolve(Choice(location_change=LocationChange(city="Lisbon")))
        finally:
            blocking.release.set()
        assert "location" in result.fallbacks
        assert result.city.name == "Lisbon"


    def test_malformed_collaborator_replies_fall_back(self, executor):
        def client(collaborator, base_url, handler):
            return RetryingJsonClient(
                collaborator, base_url, max_attempts=1, transport=httpx.MockTransport(handler), sleep=lambda s: None
            )

        resolver = _resolver(
            executor,
            location_provider=TeleportLocationProvider(
                client("teleport", "https://teleport.test", lambda request: httpx.Response(200, json=["unexpected"]))
            ),
            climate_provider=OpenMeteoClimateProvider(
                client("nominatim", "https://nominatim.test", lambda request: httpx.Response(200, json={"error": "x"})),
                client("open-meteo", "https://archive.test", lambda request: httpx.Response(500)),
            ),
            image_search=UnsplashImageSearch(
                client("unsplash", "https://unsplash.test", lambda request: httpx.Response(200, json=["unexpected"]))
            ),
        )

        result = resolver.resolve(Choice(career_change="chef"))

        assert set(result.fallbacks) == {"location", "climate", "cover_image"}
        assert result.city.name == "New York"
        assert result.cover_image.source == "placeholder"

    def test_unexpected_provider_error_falls_back(self, executor):
        resolver = _resolver(executor, location_provider=FakeLocationProvider(fail=AttributeError("no .get on list")))
        result = resolver.resolve(Choice(location_change=LocationChange(city="Lisbon", country="Portugal")))
        assert "location" in result.fallbacks
        assert result.city.name == "Lisbon"

    def test_climate_failure_keeps_coordinates(self, executor):
        climate = GeocodeOnlyClimateProvider()
        cache = TTLCache()
        resolver = _resolver(executor, cache=cache, climate_provider=climate)

        result = resolver.resolve(Choice(location_change=LocationChange(city="Lisbon", country="Portugal")))

        assert "climate" in result.fallbacks
        assert result.city.coordinates == Coordinates(lat=38.72, lon=-9.14)
        assert result.city.climate.comfort_index == 7.0
        assert cache.has("geocode:lisbon:portugal")
        assert not cache.has("climate:38.72:-9.14")


class TestFallbackCover:
    def test_seeded_placeholder(self):
        cover = fallback_cover("Lisbon chef lifestyle")
        assert cover.url == "https://picsum.photos/seed/lisbon-chef-lifestyle/800/600"
        assert cover.source == "placeholder"
