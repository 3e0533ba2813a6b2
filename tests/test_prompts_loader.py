import pytest

from app.prompts import loader


@pytest.fixture(autouse=True)
def _fresh_prompt_cache():
    loader.clear_cache()
    yield
    loader.clear_cache()


def test_list_prompts_domain():
    assert "prompt_life_narrative" in loader.list_prompts(domain="narrative")
    assert "prompt_classify_choice" in loader.list_prompts(domain="choice")


def test_get_prompt_metadata_variables():
    meta = loader.get_prompt_metadata("prompt_life_narrative")
    variables = set(meta["variables"])
    assert {"choice_text", "facts", "tone", "focus_areas", "parent"} <= variables
    assert meta["domain"] == "narrative"
    assert "chapters" in meta["output_schema"]


def test_render_prompt_includes_shared_system_prompt():
    rendered = loader.render_prompt("prompt_classify_choice", choice_text="become a chef")
    assert "JSON-only API" in rendered
    assert 'INPUT: "become a chef"' in rendered


def test_render_prompt_validates_required_variables():
    with pytest.raises(ValueError, match="choice_text"):
        loader.render_prompt("prompt_classify_choice", validate=True)


FACT_KEYS = (
    "city",
    "country",
    "cost_of_living",
    "safety",
    "housing",
    "healthcare",
    "education",
    "avg_temp_c",
    "rain_days",
    "comfort_index",
    "occupation",
    "category",
    "demand_index",
    "growth_outlook",
    "work_life_balance",
    "salary_low_usd",
    "salary_high_usd",
    "col_index",
    "currency",
    "quality_of_life_index",
    "happiness_score",
    "health_index",
    "social_index",
)


def test_parent_block_only_rendered_with_parent():
    context = {
        "choice_text": "Career: chef",
        "facts": {key: "5" for key in FACT_KEYS},
        "tone": "balanced",
        "focus_areas": "career",
    }
    without_parent = loader.render_prompt("prompt_life_narrative", parent=None, **context)
    assert "CONTINUING FROM A PREVIOUS PATH" not in without_parent

    parent = {
        "depth": 1,
        "happiness_score": 7.5,
        "quality_of_life_index": 6.0,
        "summary_excerpt": "I moved to Lisbon",
        "previous_choices": ["Location: Lisbon, Portugal"],
    }
    with_parent = loader.render_prompt("prompt_life_narrative", parent=parent, **context)
    assert "CONTINUING FROM A PREVIOUS PATH (depth 1)" in with_parent
    assert "- Location: Lisbon, Portugal" in with_parent


def test_missing_prompt_raises_key_error():
    with pytest.raises(KeyError):
        loader.get_prompt("prompt_does_not_exist")


def test_invalid_template_raises_and_is_not_silently_ignored(tmp_path, monkeypatch):
    shared = tmp_path / "v1" / "shared"
    shared.mkdir(parents=True)
    (shared / "bad.yaml").write_text("bad_prompt: '{% if foo %} missing endif'\n", encoding="utf-8")
    monkeypatch.setattr(loader, "_PROMPTS_DIR", tmp_path)

    with pytest.raises(ValueError):
        loader.list_prompts()
