import math
import random

import pytest

from fieldsync.geo.distance import Coordinate, measure_distance
from fieldsync.geo.proximity import (
    count_within_radius,
    rank_by_distance,
    records_in_time_range,
    sorted_within_radius,
    within_radius,
)

from helpers import T0, rec


def _pool(n=60, seed=5):
    rng = random.Random(seed)
    return [rec(f"u{i:02d}", Coordinate(rng.uniform(-0.05, 0.05), rng.uniform(-0.05, 0.05))) for i in range(n)]


def test_radius_scenario_equator():
    center = Coordinate(0.0, 0.0)
    inside = rec("in", Coordinate(0.0, 0.008))
    outside = rec("out", Coordinate(0.0, 0.02))
    got = within_radius(center, 1.0, [inside, outside])
    assert [r.entity_id for r in got] == ["in"]
    assert count_within_radius(center, 1.0, [inside, outside]) == 1


def test_shapes_agree_on_membership():
    center = Coordinate(0.0, 0.0)
    pool = _pool()
    for radius in (0.0, 1.0, 2.5, 4.0, 10.0):
        raw = within_radius(center, radius, pool)
        srt = sorted_within_radius(center, radius, pool)
        assert {r.entity_id for r in raw} == {r.entity_id for r in srt}
        assert count_within_radius(center, radius, pool) == len(raw)


def test_smaller_radius_is_subset():
    center = Coordinate(0.01, -0.01)
    pool = _pool()
    radii = [0.5, 1.0, 2.0, 3.0, 5.0, 8.0]
    for r1, r2 in zip(radii, radii[1:]):
        small = {r.entity_id for r in within_radius(center, r1, pool)}
        big = {r.entity_id for r in within_radius(center, r2, pool)}
        assert small <= big


def test_rank_non_decreasing_and_ties_by_id():
    center = Coordinate(0.0, 0.0)
    same = Coordinate(0.0, 0.001)
    pool = _pool(20) + [rec("zz", same), rec("aa", same), rec("mm", same)]
    ranked = rank_by_distance(center, pool)
    dists = [measure_distance(center, r.coordinate) for r in ranked]
    assert all(a <= b + 1e-12 for a, b in zip(dists, dists[1:]))

    tied = [r.entity_id for r in ranked if r.coordinate == same]
    assert tied == ["aa", "mm", "zz"]
    assert [r.entity_id for r in rank_by_distance(center, list(reversed(pool)))] == [r.entity_id for r in ranked]


def test_inputs_not_mutated_and_input_order_kept():
    center = Coordinate(0.0, 0.0)
    pool = _pool(10)
    before = list(pool)
    raw = within_radius(center, 100.0, pool)
    assert pool == before
    assert raw == before


def test_negative_radius_rejected():
    with pytest.raises(ValueError):
        within_radius(Coordinate(0.0, 0.0), -1.0, [])


def test_empty_pool():
    center = Coordinate(0.0, 0.0)
    assert within_radius(center, 1.0, []) == []
    assert rank_by_distance(center, []) == []
    assert count_within_radius(center, 1.0, []) == 0


def test_time_range_inclusive():
    c = Coordinate(0.0, 0.0)
    pool = [rec("a", c, T0), rec("b", c, T0 + 500), rec("c", c, T0 + 1000), rec("d", c, T0 + 1001)]
    got = records_in_time_range(pool, T0, T0 + 1000)
    assert [r.entity_id for r in got] == ["a", "b", "c"]
    with pytest.raises(ValueError):
        records_in_time_range(pool, T0 + 1, T0)


def test_radius_equal_to_distance_is_inclusive_at_boundary():
    rng = random.Random(23)
    center = Coordinate(12.5, -45.25)
    for i in range(300):
        p = rec(f"b{i}", Coordinate(rng.uniform(-80, 80), rng.uniform(-180, 180)))
        d = measure_distance(center, p.coordinate)
        assert within_radius(center, d, [p]) == [p]
        assert count_within_radius(center, d, [p]) == 1
        below = math.nextafter(d, 0.0)
        assert within_radius(center, below, [p]) == []
        assert count_within_radius(center, below, [p]) == 0
