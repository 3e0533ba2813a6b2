from __future__ import annotations

import logging

import pydantic

from app.core.exceptions import ClassificationError
from app.graphs.json_parser import parse_json_object
from app.graphs.schemas import Choice
from app.prompts.loader import render_prompt
from app.services.vertex_gemini import GeminiClient, GeminiError

logger = logging.getLogger(__name__)


class GeminiChoiceClassifier:
    """Maps free-text decisions onto choice dimensions with a JSON-mode prompt."""

    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    def classify(self, text: str) -> Choice:
        prompt = render_prompt("prompt_classify_choice", validate=True, choice_text=text)
        try:
            raw = self._gemini.generate_text(prompt, json_output=True)
        except GeminiError as exc:
            raise ClassificationError(f"Choice classification failed: {exc}", collaborator="gemini") from exc

        data = parse_json_object(raw)
        if data is None:
            raise ClassificationError("Classifier returned malformed JSON", collaborator="gemini")
        try:
            choice = Choice.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ClassificationError(
                f"Classifier output failed validation: {exc.error_count()} errors",
                collaborator="gemini",
            ) from exc
        if choice.is_empty():
            raise ClassificationError("Classifier found no dimensions in the choice", collaborator="gemini")
        return choice
