"""Nearest-K alert targeting.

Pipeline: drop stale candidates -> distance from origin -> radius gate ->
ascending sort (tie: entity id) -> first k -> frozen snapshot.

The snapshot is taken once when an alert fires and never recomputed; later
location updates do not change who was notified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from fieldsync.geo.distance import Coordinate
from fieldsync.geo.proximity import rank_with_distance
from fieldsync.geo.records import LocationRecord
from fieldsync.geo.staleness import is_stale


@dataclass(frozen=True)
class AlertTarget:
    entity_id: str
    distance_km: float


@dataclass(frozen=True)
class AlertTargetSnapshot:
    alert_origin: Coordinate
    targets: Tuple[AlertTarget, ...]
    computed_at_ms: int
    radius_km: float
    k: int
    stale_after_sec: float

    @property
    def target_ids(self) -> Tuple[str, ...]:
        return tuple(t.entity_id for t in self.targets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.alert_origin.to_dict(),
            "targets": [{"entity_id": t.entity_id, "distance_km": t.distance_km} for t in self.targets],
            "computed_at_ms": self.computed_at_ms,
            "radius_km": self.radius_km,
            "k": self.k,
            "stale_after_sec": self.stale_after_sec,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AlertTargetSnapshot":
        return cls(
            alert_origin=Coordinate.from_dict(d["origin"]),
            targets=tuple(AlertTarget(str(t["entity_id"]), float(t["distance_km"])) for t in d["targets"]),
            computed_at_ms=int(d["computed_at_ms"]),
            radius_km=float(d["radius_km"]),
            k=int(d["k"]),
            stale_after_sec=float(d["stale_after_sec"]),
        )


def select_nearest_k(
    origin: Coordinate,
    radius_km: float,
    k: int,
    candidates: Iterable[LocationRecord],
    stale_after_sec: float,
    now_ms: int,
) -> AlertTargetSnapshot:
    """Pick up to k fresh candidates within radius_km of origin, nearest first.

    `candidates` is consumed exactly once, so the selection is drawn from a
    single view of the pool. Fewer than k (including zero) targets is a valid
    result.
    """
    if int(k) < 0:
        raise ValueError(f"k must be >= 0, got {k!r}")
    if float(stale_after_sec) < 0.0:
        raise ValueError(f"stale_after_sec must be >= 0, got {stale_after_sec!r}")

    pool = tuple(candidates)
    fresh = [rec for rec in pool if not is_stale(rec, stale_after_sec, now_ms)]
    ranked = rank_with_distance(origin, fresh, radius_km)

    targets = tuple(AlertTarget(rec.entity_id, dist) for rec, dist in ranked[: int(k)])
    return AlertTargetSnapshot(
        alert_origin=origin,
        targets=targets,
        computed_at_ms=int(now_ms),
        radius_km=float(radius_km),
        k=int(k),
        stale_after_sec=float(stale_after_sec),
    )


__all__ = ["AlertTarget", "AlertTargetSnapshot", "select_nearest_k"]
