from __future__ import annotations

import logging
from typing import Any

from app.core.exceptions import NarrativeParseError
from app.graphs.json_parser import parse_json_object
from app.prompts.loader import render_prompt
from app.services.vertex_gemini import GeminiClient

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("summary", "chapters", "milestones")


class GeminiNarrativeGenerator:
    """Renders the life-path prompt and returns the decoded JSON document."""

    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    def generate(self, context: dict[str, Any]) -> dict[str, Any]:
        prompt = render_prompt("prompt_life_narrative", validate=True, **context)
        text = self._gemini.generate_text(prompt, json_output=True)

        data = parse_json_object(text)
        if data is None:
            raise NarrativeParseError("Narrative response is not valid JSON", collaborator="gemini")
        missing = [field for field in _REQUIRED_FIELDS if field not in data]
        if missing:
            raise NarrativeParseError(
                f"Narrative response missing required fields: {missing}",
                collaborator="gemini",
            )
        if not isinstance(data["chapters"], list) or not isinstance(data["milestones"], list):
            raise NarrativeParseError("Narrative chapters and milestones must be lists", collaborator="gemini")
        data.setdefault("tone", "balanced")
        data.setdefault("confidence_score", 0.5)
        data.setdefault("disclaimers", [])
        return data
