import json
import logging
import re

from app.core.metrics import increment_json_parse_failure

logger = logging.getLogger(__name__)


def _strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences from LLM output."""
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL | re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return text


def _clean_json_text(text: str) -> str:
    """Drop fences, leading/trailing prose lines and trailing commas."""
    lines = _strip_markdown_fences(text.strip()).split("\n")

    start_idx = next((i for i, line in enumerate(lines) if line.strip().startswith("{")), 0)
    end_idx = next(
        (i for i in range(len(lines) - 1, -1, -1) if lines[i].strip().endswith("}")),
        len(lines) - 1,
    )
    cleaned = "\n".join(lines[start_idx : end_idx + 1])
    return re.sub(r",\s*([}\]])", r"\1", cleaned).strip()


def _extract_json_object(text: str) -> str | None:
    """Extract the outermost JSON object using bracket matching."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_json_object(text: str | None) -> dict | None:
    """
    Tiered extraction of a JSON object from model output.

    Tries the raw text, then a cleaned copy, then the outermost balanced
    object. Returns None when every tier fails or the result is not an object.
    """
    if not text:
        increment_json_parse_failure("empty")
        return None

    candidates = (
        ("direct", lambda: text),
        ("cleaned", lambda: _clean_json_text(text)),
        ("object", lambda: _extract_json_object(text)),
    )
    for tier, produce in candidates:
        candidate = produce()
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            increment_json_parse_failure(tier)
            continue
        if isinstance(parsed, dict):
            return parsed
        increment_json_parse_failure(f"{tier}_not_object")

    logger.warning("All JSON parsing tiers failed. Text preview: %s", text[:300])
    return None
