"""Turn a submitted choice into a canonical `Choice`.

Structured fields pass through untouched, however they are worded. The
`text` field, and any typed field that strings several decisions together
("move to Tokyo and become a chef"), is handed to a text classifier, and
explicit structured fields keep precedence over whatever the classifier
extracts.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from app.core.exceptions import ClassificationError, ValidationError
from app.graphs.schemas import Choice, ChoiceKind, LocationChange, RawChoice

logger = logging.getLogger(__name__)

_CLAUSE_BREAK = re.compile(r"\s+(?:and|then)\s+|[.;!?]+\s*", re.IGNORECASE)
_ACTION_VERBS = frozenset(
    {
        "move",
        "become",
        "quit",
        "start",
        "study",
        "go",
        "live",
        "leave",
        "switch",
        "learn",
        "travel",
        "marry",
        "retire",
        "open",
        "join",
        "sell",
        "buy",
    }
)


class TextClassifier(Protocol):
    def classify(self, text: str) -> Choice: ...


def looks_like_free_text(value: str) -> bool:
    """True when a typed field chains several decisions, e.g. "quit my job and travel"."""
    clauses = [clause.split() for clause in _CLAUSE_BREAK.split(value)]
    clauses = [words for words in clauses if words]
    if len(clauses) < 2:
        return False
    return any(words[0].lower() in _ACTION_VERBS for words in clauses[1:])


def _split(raw: RawChoice) -> tuple[Choice, list[str]]:
    """Separate multi-decision values from the structured fields that can pass through."""
    structured = raw.structured()
    free_text: list[str] = [raw.text] if raw.text else []
    kept: dict[str, object] = {}
    for kind in ChoiceKind:
        value = getattr(structured, kind.value)
        if value is None:
            continue
        if isinstance(value, LocationChange):
            parts = [p for p in (value.city, value.country) if p]
            if any(looks_like_free_text(p) for p in parts):
                free_text.append(value.describe())
                continue
        elif looks_like_free_text(value):
            free_text.append(value)
            continue
        kept[kind.value] = value
    return Choice(**kept), free_text


class ChoiceNormalizer:
    def __init__(self, classifier: TextClassifier | None = None) -> None:
        self._classifier = classifier

    def normalize(self, raw: RawChoice) -> Choice:
        structured, free_text = _split(raw)
        if free_text:
            if self._classifier is None:
                raise ClassificationError(
                    "Free-text choice needs a text classifier but none is configured",
                    collaborator="classifier",
                )
            text = ". ".join(free_text)
            logger.info("choice.classify free_text_fields=%d", len(free_text))
            classified = self._classifier.classify(text)
            structured = structured.merged_over(classified)

        if structured.is_empty():
            raise ValidationError("Choice must specify at least one change")
        return structured
