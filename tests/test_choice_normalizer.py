"""Tests for choice normalization and free-text classification."""

import json

import pytest

from app.core.exceptions import ClassificationError, ValidationError
from app.graphs.choice_normalizer import ChoiceNormalizer, looks_like_free_text
from app.graphs.schemas import Choice, ChoiceKind, LocationChange, RawChoice
from app.services.choice_classifier import GeminiChoiceClassifier
from app.services.vertex_gemini import GeminiError


class RecordingClassifier:
    def __init__(self, result: Choice) -> None:
        self.result = result
        self.texts: list[str] = []

    def classify(self, text: str) -> Choice:
        self.texts.append(text)
        return self.result


class FakeGemini:
    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    def generate_text(self, prompt, *, json_output=False, model=None):
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class TestLooksLikeFreeText:
    @pytest.mark.parametrize(
        "value",
        ["move to Tokyo and become a chef", "Quit my job. Travel.", "Sell the house; move abroad"],
    )
    def test_chained_decisions(self, value):
        assert looks_like_free_text(value)

    @pytest.mark.parametrize(
        "value",
        [
            "chef",
            "New York",
            "Open a bakery",
            "Start a business",
            "Senior software engineer at big tech",
            "Rock and roll musician",
            "St. Louis",
        ],
    )
    def test_single_values(self, value):
        assert not looks_like_free_text(value)


class TestChoiceNormalizer:
    def test_structured_choice_passes_through(self):
        result = ChoiceNormalizer().normalize(RawChoice(career_change="chef"))
        assert result == Choice(career_change="chef")
        assert [dim.kind for dim in result.dimensions()] == [ChoiceKind.CAREER]

    @pytest.mark.parametrize("value", ["Open a bakery", "Start a business", "Senior software engineer at big tech"])
    def test_worded_structured_values_pass_through_without_classifier(self, value):
        result = ChoiceNormalizer().normalize(RawChoice(career_change=value))
        assert result == Choice(career_change=value)

    def test_whitespace_and_blanks_are_dropped(self):
        raw = RawChoice(career_change="  chef  ", education_change="   ", location_change={"city": " "})
        result = ChoiceNormalizer().normalize(raw)
        assert result.career_change == "chef"
        assert result.education_change is None
        assert result.location_change is None

    def test_empty_choice_is_rejected(self):
        with pytest.raises(ValidationError):
            ChoiceNormalizer().normalize(RawChoice())

    def test_free_text_without_classifier_fails(self):
        with pytest.raises(ClassificationError):
            ChoiceNormalizer().normalize(RawChoice(text="move to Tokyo and become a chef"))

    def test_free_text_is_classified(self):
        classifier = RecordingClassifier(
            Choice(career_change="Chef", location_change=LocationChange(city="Tokyo", country="Japan"))
        )
        result = ChoiceNormalizer(classifier).normalize(RawChoice(text="move to Tokyo and become a chef"))
        assert classifier.texts == ["move to Tokyo and become a chef"]
        assert result.location_change == LocationChange(city="Tokyo", country="Japan")

    def test_explicit_fields_beat_classifier(self):
        classifier = RecordingClassifier(Choice(career_change="Baker", lifestyle_change="Early riser"))
        raw = RawChoice(career_change="Chef", lifestyle_change="Wake up before dawn and start running")
        result = ChoiceNormalizer(classifier).normalize(raw)
        assert result.career_change == "Chef"
        assert result.lifestyle_change == "Early riser"
        assert classifier.texts == ["Wake up before dawn and start running"]


class TestChoiceDescribe:
    def test_describe_lists_dimensions(self):
        choice = Choice(career_change="chef", location_change=LocationChange(city="Lisbon", country="Portugal"))
        assert choice.describe() == "Career: chef; Location: Lisbon, Portugal"

    def test_merged_over_prefers_self(self):
        mine = Choice(career_change="chef")
        other = Choice(career_change="baker", relationship_change="Get married")
        merged = mine.merged_over(other)
        assert merged.career_change == "chef"
        assert merged.relationship_change == "Get married"


class TestGeminiChoiceClassifier:
    def test_parses_json_reply(self):
        gemini = FakeGemini(json.dumps({"career_change": "Chef", "location_change": {"city": "Tokyo"}}))
        choice = GeminiChoiceClassifier(gemini).classify("move to Tokyo and become a chef")
        assert choice.career_change == "Chef"
        assert choice.location_change.city == "Tokyo"
        assert "move to Tokyo and become a chef" in gemini.prompts[0]

    def test_fenced_json_is_accepted(self):
        gemini = FakeGemini('```json\n{"education_change": "Culinary school"}\n```')
        choice = GeminiChoiceClassifier(gemini).classify("go to culinary school")
        assert choice.education_change == "Culinary school"

    def test_malformed_reply_raises(self):
        with pytest.raises(ClassificationError):
            GeminiChoiceClassifier(FakeGemini("not json at all")).classify("become a chef")

    def test_empty_reply_raises(self):
        with pytest.raises(ClassificationError):
            GeminiChoiceClassifier(FakeGemini("{}")).classify("become a chef")

    def test_gemini_failure_raises(self):
        gemini = FakeGemini(GeminiError("quota", error_type="rate_limit"))
        with pytest.raises(ClassificationError):
            GeminiChoiceClassifier(gemini).classify("become a chef")
