"""
Centralized Gemini client factory.

One builder shared by the narrative generator and the choice classifier.
"""

from __future__ import annotations

from app.core.exceptions import ConfigurationError
from app.core.settings import Settings, settings
from app.services.vertex_gemini import GeminiClient


class GeminiNotConfiguredError(ConfigurationError):
    """Raised when Gemini API credentials are missing."""

    def __init__(self) -> None:
        super().__init__(
            "Gemini is not configured. Set GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT."
        )


def build_gemini_client(config: Settings | None = None) -> GeminiClient:
    """Build a GeminiClient from application settings.

    Raises:
        GeminiNotConfiguredError: If neither API key nor GCP project is set.
    """
    config = config or settings
    if not config.google_cloud_project and not config.gemini_api_key:
        raise GeminiNotConfiguredError()

    return GeminiClient(
        project=config.google_cloud_project,
        location=config.google_cloud_location,
        api_key=config.gemini_api_key,
        text_model=config.gemini_text_model,
        timeout_seconds=config.gemini_timeout_seconds,
        max_retries=config.gemini_max_retries,
        initial_backoff_seconds=config.gemini_initial_backoff_seconds,
        fallback_text_model=config.gemini_fallback_text_model,
        circuit_breaker_threshold=config.gemini_circuit_breaker_threshold,
        circuit_breaker_timeout=config.gemini_circuit_breaker_timeout,
    )
