"""
Wiring for the node pipeline.

Builds the shared cache, lookup executor, HTTP collaborators and Gemini
client once per process and hands them to a single `NodeAssembler`.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from app.core.gemini_factory import GeminiNotConfiguredError, build_gemini_client
from app.core.settings import Settings, settings
from app.graphs.choice_normalizer import ChoiceNormalizer
from app.graphs.metrics_blender import MetricsBlender
from app.graphs.metrics_resolver import CacheTtls, MetricsResolver, ResolverDefaults
from app.graphs.narrative import NarrativeCoordinator
from app.graphs.node_assembler import NodeAssembler
from app.services.cache import TTLCache
from app.services.choice_classifier import GeminiChoiceClassifier
from app.services.climate import OpenMeteoClimateProvider
from app.services.http_retry import RetryingJsonClient
from app.services.narrative_generator import GeminiNarrativeGenerator
from app.services.node_store import NodeStore
from app.services.occupations import CatalogOccupationProvider
from app.services.teleport import TeleportLocationProvider
from app.services.unsplash import UnsplashImageSearch
from app.services.vertex_gemini import GeminiClient

logger = logging.getLogger(__name__)


@dataclass
class PipelineResources:
    assembler: NodeAssembler
    cache: TTLCache
    executor: ThreadPoolExecutor
    gemini: GeminiClient | None = None
    http_clients: list[RetryingJsonClient] = field(default_factory=list)

    def close(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)
        for client in self.http_clients:
            client.close()


def _http_client(config: Settings, collaborator: str, base_url: str, **headers: str) -> RetryingJsonClient:
    return RetryingJsonClient(
        collaborator,
        base_url,
        timeout_seconds=config.http_timeout_seconds,
        max_attempts=config.http_max_attempts,
        initial_backoff_seconds=config.http_initial_backoff_seconds,
        headers={"User-Agent": config.http_user_agent, "Accept": "application/json", **headers},
    )


def build_pipeline_resources(config: Settings | None = None) -> PipelineResources:
    config = config or settings
    cache = TTLCache(max_entries=config.cache_max_entries)
    executor = ThreadPoolExecutor(max_workers=config.lookup_workers, thread_name_prefix="lookup")

    http_clients: list[RetryingJsonClient] = []
    location_provider = None
    climate_provider = None
    image_search = None
    if config.enable_external_lookups:
        teleport = _http_client(config, "teleport", config.teleport_base_url)
        nominatim = _http_client(config, "nominatim", config.nominatim_base_url)
        open_meteo = _http_client(config, "open_meteo", config.open_meteo_base_url)
        http_clients.extend([teleport, nominatim, open_meteo])
        location_provider = TeleportLocationProvider(teleport)
        climate_provider = OpenMeteoClimateProvider(nominatim, open_meteo)
        if config.unsplash_access_key:
            unsplash = _http_client(
                config,
                "unsplash",
                config.unsplash_base_url,
                Authorization=f"Client-ID {config.unsplash_access_key}",
            )
            http_clients.append(unsplash)
            image_search = UnsplashImageSearch(unsplash)
        else:
            logger.info("Unsplash access key not set; cover images use placeholders")
    else:
        logger.info("External lookups disabled; city, climate and image data use fallbacks")

    gemini: GeminiClient | None = None
    try:
        gemini = build_gemini_client(config)
    except GeminiNotConfiguredError as exc:
        logger.warning("%s Narratives use the template fallback and free-text choices are rejected.", exc)

    resolver = MetricsResolver(
        location_provider=location_provider,
        climate_provider=climate_provider,
        occupation_provider=CatalogOccupationProvider(),
        image_search=image_search,
        cache=cache,
        executor=executor,
        lookup_timeout_seconds=config.lookup_timeout_seconds,
        ttls=CacheTtls(
            location=config.cache_ttl_location_seconds,
            geocode=config.cache_ttl_geocode_seconds,
            climate=config.cache_ttl_climate_seconds,
            occupation=config.cache_ttl_occupation_seconds,
            image=config.cache_ttl_image_seconds,
        ),
        defaults=ResolverDefaults(
            city=config.default_city,
            country=config.default_country,
            occupation=config.default_occupation,
        ),
    )
    assembler = NodeAssembler(
        NodeStore(),
        ChoiceNormalizer(GeminiChoiceClassifier(gemini) if gemini is not None else None),
        resolver,
        MetricsBlender(),
        NarrativeCoordinator(GeminiNarrativeGenerator(gemini) if gemini is not None else None),
        max_depth=config.max_node_depth,
        max_nodes_per_session=config.max_nodes_per_session,
    )
    return PipelineResources(
        assembler=assembler,
        cache=cache,
        executor=executor,
        gemini=gemini,
        http_clients=http_clients,
    )
