from app.config.loaders import (
    clear_config_cache,
    fallback_city_scores,
    find_occupation,
    load_city_fallbacks_v1,
    load_occupation_catalog_v1,
)


def test_can_load_and_validate_schema():
    catalog = load_occupation_catalog_v1()
    assert catalog.version == "v1"
    assert len(catalog.occupations) >= 1
    assert load_city_fallbacks_v1().version == "v1"


def test_find_occupation_by_keyword():
    assert find_occupation("Senior Software Developer").category == "Technology"
    assert find_occupation("pastry chef").category == "Hospitality"
    assert find_occupation("Civil Engineer").category == "Engineering"


def test_find_occupation_defaults():
    default = load_occupation_catalog_v1().default
    assert find_occupation("Astronaut") == default
    assert find_occupation(None) == default


def test_fallback_scores_for_unknown_place_are_base_scores():
    assert fallback_city_scores("Smallville", "Atlantis") == load_city_fallbacks_v1().base_scores


def test_fallback_scores_apply_country_adjustment():
    scores = fallback_city_scores("Toronto", "Canada")
    assert scores["healthcare"] == 8.0
    assert scores["tolerance"] == 8.5


def test_major_city_adjustments_respect_bounds():
    scores = fallback_city_scores("New York", "United States")
    assert scores["business"] == 9.0
    assert scores["leisure"] == 6.5
    assert scores["cost_of_living"] == 4.5


def test_clear_config_cache_reloads():
    first = load_occupation_catalog_v1()
    clear_config_cache()
    assert load_occupation_catalog_v1() is not first
