"""Shared JSON-over-HTTP client for the lookup collaborators.

Retries network errors, timeouts and 5xx responses with exponential backoff,
then raises `CollaboratorUnavailable`. A 404 is a `LookupNotFoundError`.
The typed getters also treat a body of the wrong JSON shape as unavailable.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from app.core.exceptions import CollaboratorUnavailable, LookupNotFoundError

logger = logging.getLogger(__name__)


class RetryingJsonClient:
    def __init__(
        self,
        collaborator: str,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        initial_backoff_seconds: float = 0.5,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.collaborator = collaborator
        self._max_attempts = max(1, max_attempts)
        self._initial_backoff_seconds = initial_backoff_seconds
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        last_exc: Exception | None = None
        for attempt in range(self._max_attempts):
            try:
                response = self._client.get(path, params=params)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if response.status_code == 404:
                    raise LookupNotFoundError(
                        f"{self.collaborator} returned 404 for {path}",
                        collaborator=self.collaborator,
                    )
                if response.status_code < 500:
                    return self._decode(response, path)
                last_exc = httpx.HTTPStatusError(
                    f"server error {response.status_code}",
                    request=response.request,
                    response=response,
                )

            logger.warning(
                "%s.get failed path=%s attempt=%s/%s error=%s",
                self.collaborator,
                path,
                attempt + 1,
                self._max_attempts,
                repr(last_exc),
            )
            if attempt + 1 < self._max_attempts:
                self._sleep(self._initial_backoff_seconds * (2**attempt))

        raise CollaboratorUnavailable(
            f"{self.collaborator} unavailable after {self._max_attempts} attempts: {last_exc!r}",
            collaborator=self.collaborator,
        )

    def get_json_object(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._expect(self.get_json(path, params), dict, path)

    def get_json_list(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        return self._expect(self.get_json(path, params), list, path)

    def _expect(self, payload: Any, kind: type, path: str) -> Any:
        if not isinstance(payload, kind):
            raise CollaboratorUnavailable(
                f"{self.collaborator} returned {type(payload).__name__} for {path}, expected {kind.__name__}",
                collaborator=self.collaborator,
            )
        return payload

    def _decode(self, response: httpx.Response, path: str) -> Any:
        if response.status_code >= 400:
            # 4xx other than 404 is not retryable
            raise CollaboratorUnavailable(
                f"{self.collaborator} rejected {path} with {response.status_code}",
                collaborator=self.collaborator,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise CollaboratorUnavailable(
                f"{self.collaborator} returned invalid JSON for {path}",
                collaborator=self.collaborator,
            ) from exc

    def close(self) -> None:
        self._client.close()
