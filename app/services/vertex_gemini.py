import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from google import genai
from google.genai import types

from app.core.exceptions import CollaboratorUnavailable
from app.core.metrics import track_gemini_call

logger = logging.getLogger(__name__)


class GeminiError(CollaboratorUnavailable):
    """Gemini call failed after retries; carries the request id and model for logs."""

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        model: str | None = None,
        error_type: str = "unknown",
    ):
        super().__init__(message, collaborator="gemini")
        self.request_id = request_id
        self.model = model
        self.error_type = error_type


class GeminiCircuitOpenError(GeminiError):
    """Raised without calling the API while the circuit breaker is open."""

    def __init__(self, message: str, retry_after: datetime | None = None):
        super().__init__(message, error_type="circuit_open")
        self.retry_after = retry_after


@dataclass
class CircuitBreakerState:
    failure_count: int = 0
    circuit_open_until: datetime | None = None
    consecutive_successes: int = 0
    failure_threshold: int = 5
    recovery_timeout_seconds: int = 60
    half_open_success_threshold: int = 2
    # shared by lookup threads and background jobs
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.consecutive_successes = 0
            if self.failure_count >= self.failure_threshold:
                self.circuit_open_until = datetime.now(timezone.utc) + timedelta(
                    seconds=self.recovery_timeout_seconds
                )
                logger.warning(
                    "Circuit breaker OPEN: %d failures, retry after %s",
                    self.failure_count,
                    self.circuit_open_until.isoformat(),
                )

    def record_success(self) -> None:
        with self._lock:
            self.consecutive_successes += 1
            if self.circuit_open_until is None:
                self.failure_count = 0
            elif self.is_half_open and self.consecutive_successes >= self.half_open_success_threshold:
                logger.info("Circuit breaker CLOSED: recovered after %d successes", self.consecutive_successes)
                self.reset()

    def reset(self) -> None:
        with self._lock:
            self.failure_count = 0
            self.circuit_open_until = None
            self.consecutive_successes = 0

    @property
    def is_open(self) -> bool:
        if self.circuit_open_until is None:
            return False
        return datetime.now(timezone.utc) < self.circuit_open_until

    @property
    def is_half_open(self) -> bool:
        if self.circuit_open_until is None:
            return False
        return datetime.now(timezone.utc) >= self.circuit_open_until

    def check_circuit(self) -> None:
        if self.is_open:
            raise GeminiCircuitOpenError(
                f"Circuit breaker is open after {self.failure_count} failures",
                retry_after=self.circuit_open_until,
            )


def classify_error(error_text: str) -> tuple[str, bool]:
    """Map an SDK error message to (error_type, retryable)."""
    lowered = error_text.lower()
    if "resource_exhausted" in lowered or "429" in error_text:
        return "rate_limit", True
    if "safety" in lowered or "blocked" in lowered:
        return "content_filter", False
    if "timeout" in lowered or "deadline" in lowered:
        return "timeout", True
    if "unavailable" in lowered or "503" in error_text or "500" in error_text:
        return "model_unavailable", True
    if "invalid" in lowered or "400" in error_text:
        return "invalid_request", False
    return "unknown", True


class GeminiClient:
    """Text-only Gemini wrapper used for narratives and choice classification."""

    def __init__(
        self,
        project: str | None,
        location: str | None,
        api_key: str | None,
        text_model: str,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        initial_backoff_seconds: float = 0.8,
        fallback_text_model: str | None = None,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        client: object | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if client is None and not api_key and (not project or not location):
            raise RuntimeError(
                "Either GEMINI_API_KEY or both GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION must be configured"
            )
        self._text_model = text_model
        self._fallback_text_model = fallback_text_model
        self._max_attempts = max(1, min(3, max_retries))
        self._initial_backoff_seconds = initial_backoff_seconds
        self._sleep = sleep
        self._circuit_breaker = CircuitBreakerState(
            failure_threshold=circuit_breaker_threshold,
            recovery_timeout_seconds=circuit_breaker_timeout,
        )
        self.last_request_id: str | None = None
        self.last_model: str | None = None

        if client is not None:
            self._client = client
        else:
            http_options = types.HttpOptions(timeout=int(timeout_seconds * 1000))
            if project and location:
                self._client = genai.Client(
                    vertexai=True, project=project, location=location, http_options=http_options
                )
            else:
                self._client = genai.Client(api_key=api_key, http_options=http_options)

    def _call_with_retry(self, prompt: str, model_name: str, json_output: bool) -> str:
        self._circuit_breaker.check_circuit()
        request_id = str(uuid.uuid4())
        config = types.GenerateContentConfig(response_mime_type="application/json") if json_output else None
        error_type = "unknown"
        last_exc: Exception | None = None

        for attempt in range(self._max_attempts):
            try:
                with track_gemini_call("generate_text"):
                    response = self._client.models.generate_content(
                        model=model_name,
                        contents=[prompt],
                        config=config,
                    )
                text = (getattr(response, "text", None) or "").strip()
                if not text:
                    raise RuntimeError("Gemini returned no textual content")
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                error_type, retryable = classify_error(str(exc))
                logger.warning(
                    "gemini.generate_text failed request_id=%s model=%s attempt=%s/%s type=%s error=%s",
                    request_id,
                    model_name,
                    attempt + 1,
                    self._max_attempts,
                    error_type,
                    repr(exc),
                )
                if not retryable or attempt + 1 >= self._max_attempts:
                    break
                self._sleep(self._initial_backoff_seconds * (2**attempt))
                continue

            self._circuit_breaker.record_success()
            self.last_request_id = getattr(response, "response_id", None) or request_id
            self.last_model = model_name
            return text

        self._circuit_breaker.record_failure()
        self.last_request_id = request_id
        self.last_model = model_name
        raise GeminiError(
            f"Gemini generate_text failed: {last_exc!r}",
            request_id=request_id,
            model=model_name,
            error_type=error_type,
        )

    def generate_text(self, prompt: str, *, json_output: bool = False, model: str | None = None) -> str:
        """Generate text, falling back to the secondary model on transient failures."""
        model_name = model or self._text_model
        try:
            return self._call_with_retry(prompt, model_name, json_output)
        except GeminiCircuitOpenError:
            raise
        except GeminiError as exc:
            fallback = self._fallback_text_model
            if exc.error_type not in {"rate_limit", "timeout", "model_unavailable"}:
                raise
            if not fallback or fallback == model_name:
                raise
            logger.warning("Primary model %s failed, trying fallback %s: %s", model_name, fallback, exc)
            return self._call_with_retry(prompt, fallback, json_output)

    def circuit_breaker_status(self) -> dict[str, object]:
        cb = self._circuit_breaker
        return {
            "failure_count": cb.failure_count,
            "is_open": cb.is_open,
            "circuit_open_until": cb.circuit_open_until.isoformat() if cb.circuit_open_until else None,
        }
