"""Per-entity conditioning of raw location fixes.

Each tracked entity is either UNSEEN (no state yet, represented by ``None``)
or TRACKING (a `ConditioningState`). `condition_fix` is a pure transition

    (state, raw fix, profile) -> (new state, FixResult)

Gates, in order, while TRACKING:

1. accuracy: known accuracy worse than ``max_accuracy_m`` -> rejected(poor_accuracy)
2. outlier: jump > ``max_jump_m`` within ``min_plausible_interval_ms`` of the
   last accepted fix -> rejected(outlier)
3. movement: jump < ``movement_threshold_m`` -> held (accepted coordinate kept)
4. otherwise low-pass blend toward the raw fix with ``smoothing_alpha`` -> smoothed

``jump`` is measured from the last *raw* fix, not the smoothed estimate.
Rejections are reported in the result; nothing here raises for a bad fix.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from fieldsync.geo.distance import Coordinate, measure_distance_m


class FixStatus(str, Enum):
    INITIAL = "initial"
    REJECTED = "rejected"
    HELD = "held"
    SMOOTHED = "smoothed"


class RejectReason(str, Enum):
    POOR_ACCURACY = "poor_accuracy"
    OUTLIER = "outlier"


@dataclass(frozen=True)
class ConditioningProfile:
    name: str
    max_accuracy_m: float = 50.0
    max_jump_m: float = 200.0
    min_plausible_interval_ms: float = 5000.0
    movement_threshold_m: float = 5.0
    smoothing_alpha: float = 0.3

    def __post_init__(self) -> None:
        for key in ("max_accuracy_m", "max_jump_m", "min_plausible_interval_ms", "movement_threshold_m"):
            v = float(getattr(self, key))
            if math.isnan(v) or v < 0.0:
                raise ValueError(f"{self.name}: {key} must be >= 0, got {v!r}")
            object.__setattr__(self, key, v)
        alpha = float(self.smoothing_alpha)
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"{self.name}: smoothing_alpha must be in (0, 1], got {alpha!r}")
        object.__setattr__(self, "smoothing_alpha", alpha)


# Responsive: what the field unit sees on its own map.
DISPLAY_PROFILE = ConditioningProfile(name="display", movement_threshold_m=5.0, smoothing_alpha=0.3)
# Conservative: what is shared with other parties.
REPORTED_PROFILE = ConditioningProfile(name="reported", movement_threshold_m=15.0, smoothing_alpha=0.15)


@dataclass(frozen=True)
class ConditioningState:
    entity_id: str
    last_accepted: Coordinate
    last_raw: Coordinate
    last_accepted_at_ms: int
    last_raw_at_ms: int


@dataclass(frozen=True)
class FixResult:
    status: FixStatus
    coordinate: Optional[Coordinate] = None
    reason: Optional[RejectReason] = None
    jump_m: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return self.status is not FixStatus.REJECTED

    @property
    def label(self) -> str:
        if self.reason is not None:
            return f"{self.status.value}({self.reason.value})"
        return self.status.value


def _accuracy_known(accuracy_m: Optional[float]) -> bool:
    return accuracy_m is not None and math.isfinite(float(accuracy_m))


def _wrap_lon(lon: float) -> float:
    if lon > 180.0:
        return lon - 360.0
    if lon < -180.0:
        return lon + 360.0
    return lon


def _blend(prev: Coordinate, raw: Coordinate, alpha: float) -> Coordinate:
    # shortest way round in longitude, so a move across ±180° stays local
    dlon = (raw.longitude - prev.longitude + 180.0) % 360.0 - 180.0
    return Coordinate(
        prev.latitude + alpha * (raw.latitude - prev.latitude),
        _wrap_lon(prev.longitude + alpha * dlon),
    )


def condition_fix(
    entity_id: str,
    state: Optional[ConditioningState],
    raw: Coordinate,
    accuracy_m: Optional[float],
    profile: ConditioningProfile,
    now_ms: int,
) -> Tuple[ConditioningState, FixResult]:
    """Run one raw fix through the gates. Returns (new_state, result).

    On rejection the returned state is the input state, unchanged.
    """
    entity_id = str(entity_id)
    now_ms = int(now_ms)

    if state is None:
        first = ConditioningState(
            entity_id=entity_id,
            last_accepted=raw,
            last_raw=raw,
            last_accepted_at_ms=now_ms,
            last_raw_at_ms=now_ms,
        )
        return first, FixResult(FixStatus.INITIAL, raw)

    if state.entity_id != entity_id:
        raise ValueError(f"state belongs to {state.entity_id!r}, not {entity_id!r}")

    if _accuracy_known(accuracy_m) and float(accuracy_m) > profile.max_accuracy_m:
        return state, FixResult(FixStatus.REJECTED, reason=RejectReason.POOR_ACCURACY)

    jump_m = measure_distance_m(state.last_raw, raw)
    dt_ms = now_ms - state.last_accepted_at_ms
    if jump_m > profile.max_jump_m and dt_ms < profile.min_plausible_interval_ms:
        return state, FixResult(FixStatus.REJECTED, reason=RejectReason.OUTLIER, jump_m=jump_m)

    accepted_at = max(state.last_accepted_at_ms, now_ms)
    if jump_m < profile.movement_threshold_m:
        held = replace(state, last_raw=raw, last_raw_at_ms=now_ms, last_accepted_at_ms=accepted_at)
        return held, FixResult(FixStatus.HELD, state.last_accepted, jump_m=jump_m)

    smoothed = _blend(state.last_accepted, raw, profile.smoothing_alpha)
    new_state = ConditioningState(
        entity_id=entity_id,
        last_accepted=smoothed,
        last_raw=raw,
        last_accepted_at_ms=accepted_at,
        last_raw_at_ms=now_ms,
    )
    return new_state, FixResult(FixStatus.SMOOTHED, smoothed, jump_m=jump_m)


__all__ = [
    "FixStatus",
    "RejectReason",
    "ConditioningProfile",
    "ConditioningState",
    "FixResult",
    "DISPLAY_PROFILE",
    "REPORTED_PROFILE",
    "condition_fix",
]
