"""Radius membership and distance ranking over location records.

All query shapes (list, sorted list, count) go through `_in_radius_mask`, so
they agree on membership for the same inputs. Ties in distance are broken by
entity id so repeated queries over identical input order identically.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from fieldsync.geo.distance import Coordinate, distances_km
from fieldsync.geo.records import LocationRecord


def _check_radius(radius_km: float) -> float:
    r = float(radius_km)
    if math.isnan(r) or r < 0.0:
        raise ValueError(f"radius_km must be >= 0, got {radius_km!r}")
    return r


def _pool_distances(center: Coordinate, records: Sequence[LocationRecord]) -> np.ndarray:
    return distances_km(center, [r.coordinate for r in records])


def _in_radius_mask(dists: np.ndarray, radius_km: float) -> np.ndarray:
    return dists <= radius_km


def _ranked(pairs: Iterable[Tuple[LocationRecord, float]]) -> List[Tuple[LocationRecord, float]]:
    return sorted(pairs, key=lambda p: (p[1], p[0].entity_id))


def measure_pool(
    center: Coordinate,
    records: Sequence[LocationRecord],
    radius_km: Optional[float] = None,
) -> List[Tuple[LocationRecord, float]]:
    """(record, distance_km) pairs in input order, optionally limited to a radius."""
    records = list(records)
    dists = _pool_distances(center, records)
    if radius_km is None:
        keep = np.ones(len(records), dtype=bool)
    else:
        keep = _in_radius_mask(dists, _check_radius(radius_km))
    return [(rec, float(d)) for rec, d, k in zip(records, dists, keep) if k]


def within_radius(center: Coordinate, radius_km: float, records: Sequence[LocationRecord]) -> List[LocationRecord]:
    """Records within radius_km of center (inclusive), in input order."""
    return [rec for rec, _ in measure_pool(center, records, radius_km)]


def sorted_within_radius(
    center: Coordinate, radius_km: float, records: Sequence[LocationRecord]
) -> List[LocationRecord]:
    return [rec for rec, _ in _ranked(measure_pool(center, records, radius_km))]


def count_within_radius(center: Coordinate, radius_km: float, records: Sequence[LocationRecord]) -> int:
    records = list(records)
    r = _check_radius(radius_km)
    return int(np.count_nonzero(_in_radius_mask(_pool_distances(center, records), r)))


def rank_by_distance(center: Coordinate, records: Sequence[LocationRecord]) -> List[LocationRecord]:
    """All records ordered by ascending distance from center, ties by entity id."""
    return [rec for rec, _ in _ranked(measure_pool(center, records))]


def rank_with_distance(
    center: Coordinate,
    records: Sequence[LocationRecord],
    radius_km: Optional[float] = None,
) -> List[Tuple[LocationRecord, float]]:
    return _ranked(measure_pool(center, records, radius_km))


def records_in_time_range(records: Iterable[LocationRecord], start_ms: int, end_ms: int) -> List[LocationRecord]:
    """Records captured within [start_ms, end_ms]."""
    if end_ms < start_ms:
        raise ValueError(f"empty time range: {start_ms} > {end_ms}")
    return [r for r in records if start_ms <= r.captured_at_ms <= end_ms]


__all__ = [
    "measure_pool",
    "within_radius",
    "sorted_within_radius",
    "count_within_radius",
    "rank_by_distance",
    "rank_with_distance",
    "records_in_time_range",
]
