"""Tests for weighted creative selection."""
import random
from collections import Counter

from tracklab.schemas.abtest import Creative
from tracklab.services.creatives import select_creative


def creatives(*weights):
    return [Creative(name=f"c{i}", distribution=w) for i, w in enumerate(weights)]


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def test_empty_list_returns_none():
    assert select_creative([]) is None


def test_zero_total_always_returns_first():
    pool = creatives(0, 0)

    for _ in range(100):
        assert select_creative(pool).index == 0


def test_missing_weights_count_as_zero():
    pool = [Creative.model_validate({"name": "a", "distribution": None}), Creative(name="b", distribution=2)]

    assert select_creative(pool, FixedRandom(0.1)).index == 1


def test_walks_cumulative_weights_in_order():
    pool = creatives(1, 1, 2)  # total 4 -> [0,1) [1,2) [2,4)

    assert select_creative(pool, FixedRandom(0.0)).index == 0
    assert select_creative(pool, FixedRandom(0.2)).index == 0
    assert select_creative(pool, FixedRandom(0.25)).index == 0  # remainder exactly 0
    assert select_creative(pool, FixedRandom(0.3)).index == 1
    assert select_creative(pool, FixedRandom(0.6)).index == 2
    assert select_creative(pool, FixedRandom(0.999)).index == 2


def test_selected_creative_is_the_indexed_one():
    pool = creatives(0, 5)
    selected = select_creative(pool, FixedRandom(0.5))

    assert selected.index == 1
    assert selected.creative is pool[1]


def test_weighted_distribution_converges():
    """[1, 1, 2] -> roughly 25% / 25% / 50% over many draws."""
    rng = random.Random(1234)
    pool = creatives(1, 1, 2)

    counts = Counter(select_creative(pool, rng).index for _ in range(10_000))

    assert 0.47 <= counts[2] / 10_000 <= 0.53
    assert 0.22 <= counts[0] / 10_000 <= 0.28
    assert 0.22 <= counts[1] / 10_000 <= 0.28
