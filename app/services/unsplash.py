from __future__ import annotations

import logging

from app.core.exceptions import CollaboratorUnavailable, LookupNotFoundError
from app.graphs.schemas import CoverImage
from app.services.http_retry import RetryingJsonClient

logger = logging.getLogger(__name__)


def cover_query(city: str, occupation: str, lifestyle: str | None = None) -> str:
    return " ".join(term for term in (city, occupation, lifestyle) if term)


class UnsplashImageSearch:
    """Landscape cover photos for a node, one result per query."""

    def __init__(self, client: RetryingJsonClient) -> None:
        self._client = client

    def cover_image(self, query: str) -> CoverImage:
        payload = self._client.get_json_object(
            "/search/photos",
            params={
                "query": query,
                "per_page": 1,
                "orientation": "landscape",
                "content_filter": "high",
                "order_by": "relevant",
            },
        )
        results = payload.get("results") or []
        if not results:
            raise LookupNotFoundError(f"No images found for query: {query}", collaborator="unsplash")
        try:
            image = results[0]
            url = (image.get("urls") or {}).get("regular")
            photographer = (image.get("user") or {}).get("name") or "Unknown"
            alt = image.get("description") or image.get("alt_description") or query
        except (AttributeError, KeyError, TypeError) as exc:
            raise CollaboratorUnavailable(
                f"Malformed image result for query: {query}",
                collaborator="unsplash",
            ) from exc
        if not url:
            raise LookupNotFoundError(f"Image without url for query: {query}", collaborator="unsplash")
        return CoverImage(
            url=url,
            alt=alt,
            credit=f"Photo by {photographer} on Unsplash",
            source="unsplash",
        )
