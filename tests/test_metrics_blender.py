"""Tests for composite index computation and parent blending."""

import random
import uuid

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from app.graphs.metrics_blender import (
    FreshIndices,
    MetricsBlender,
    blend,
    blend_with_parent,
    compute_fresh,
    round_half_up,
    variability_seed,
    weighted_average,
)
from app.graphs.metrics_resolver import derive_finances, fallback_climate
from app.graphs.schemas import CityMetrics, CityScores, CompositeIndices
from app.services.occupations import CatalogOccupationProvider


def _city(**scores) -> CityMetrics:
    return CityMetrics(
        name="Lisbon",
        country="Portugal",
        scores=CityScores(**scores),
        climate=fallback_climate(),
    )


def _fresh(value: float, work_life_balance: float = 6.0) -> FreshIndices:
    return FreshIndices(
        quality_of_life_index=value,
        happiness_score=value,
        work_life_balance=work_life_balance,
        health_index=value,
        social_index=value,
        creativity_index=value,
        adventure_index=value,
    )


class TestRounding:
    @pytest.mark.parametrize(
        "value,expected",
        [(5.25, 5.3), (5.35, 5.4), (2.45, 2.5), (7.04, 7.0), (0.05, 0.1)],
    )
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_weighted_average_uses_neutral_for_missing(self):
        assert weighted_average({"a": 10.0}, {"a": 0.5, "b": 0.5}) == pytest.approx(7.5)


class TestBlendWithParent:
    def test_documented_example(self):
        assert blend_with_parent(5.0, 8.0, 0.7) == 5.9

    def test_without_parent_rounds_fresh(self):
        assert blend_with_parent(6.66, None, 0.7) == 6.7

    def test_clamps_to_range(self):
        assert blend_with_parent(12.0, None, 0.5) == 10.0
        assert blend_with_parent(-3.0, None, 0.5) == 0.0


class TestBlend:
    def test_work_life_balance_is_not_averaged(self):
        parent = CompositeIndices(**{name: 9.0 for name in CompositeIndices.model_fields})
        result = blend(_fresh(5.0, work_life_balance=4.25), parent)
        assert result.work_life_balance == 4.3
        assert result.happiness_score == 6.2  # 5.0 * 0.7 + 9.0 * 0.3
        assert result.creativity_index == 7.0  # 5.0 * 0.5 + 9.0 * 0.5

    def test_happiness_example_with_parent(self):
        parent = CompositeIndices(**{name: 8.0 for name in CompositeIndices.model_fields})
        assert blend(_fresh(5.0), parent).happiness_score == 5.9


class TestComputeFresh:
    def test_occupation_work_life_balance_wins(self):
        occupation = CatalogOccupationProvider().lookup("Chef")
        city = _city()
        fresh = compute_fresh(city, occupation, derive_finances("Chef", 5.0), random.Random(1), 9.0)
        assert fresh.work_life_balance == occupation.work_life_balance

    def test_parent_work_life_balance_when_occupation_missing(self):
        fresh = compute_fresh(_city(), None, derive_finances("x", 5.0), random.Random(1), 3.0)
        assert fresh.work_life_balance == 3.0

    def test_neutral_work_life_balance_without_sources(self):
        fresh = compute_fresh(_city(), None, derive_finances("x", 5.0), random.Random(1))
        assert fresh.work_life_balance == 5.0


class TestMetricsBlender:
    def test_same_node_id_is_reproducible(self):
        node_id = uuid.uuid4()
        city = _city(safety=7.0)
        occupation = CatalogOccupationProvider().lookup("Teacher")
        finances = derive_finances("Teacher", 5.0)

        first = MetricsBlender().blend_node(node_id, city, occupation, finances)
        second = MetricsBlender().blend_node(node_id, city, occupation, finances)
        assert first == second

    def test_seed_differs_between_nodes(self):
        assert variability_seed(uuid.uuid4()) != variability_seed(uuid.uuid4())


_score = st.floats(min_value=0.0, max_value=10.0, allow_nan=False, allow_infinity=False)


@pytest.mark.property
class TestBlendProperties:
    @given(
        safety=_score,
        healthcare=_score,
        education=_score,
        leisure=_score,
        tolerance=_score,
        cost_of_living=_score,
        parent_value=st.one_of(st.none(), _score),
        seed=st.integers(min_value=0, max_value=2**32),
    )
    @settings(max_examples=60, deadline=None)
    def test_indices_stay_in_range(
        self, safety, healthcare, education, leisure, tolerance, cost_of_living, parent_value, seed
    ):
        city = _city(
            safety=safety,
            healthcare=healthcare,
            education=education,
            leisure=leisure,
            tolerance=tolerance,
            cost_of_living=cost_of_living,
        )
        occupation = CatalogOccupationProvider().lookup("Software Developer")
        parent = None
        if parent_value is not None:
            parent = CompositeIndices(**{name: parent_value for name in CompositeIndices.model_fields})

        fresh = compute_fresh(city, occupation, derive_finances("Software Developer", cost_of_living), random.Random(seed))
        result = blend(fresh, parent)
        for value in result.model_dump().values():
            assert 0.0 <= value <= 10.0
            assert round_half_up(value) == value

    @given(value=_score)
    @settings(max_examples=60, deadline=None)
    def test_blending_with_itself_is_stable(self, value):
        alone = blend(_fresh(value), None)
        again = blend(_fresh(value), alone)
        assert again == alone
