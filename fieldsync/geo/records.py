from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fieldsync.geo.distance import Coordinate


@dataclass(frozen=True)
class LocationRecord:
    """Last accepted position of one entity. Replaced, never mutated."""
    entity_id: str
    coordinate: Coordinate
    captured_at_ms: int
    accuracy_m: Optional[float] = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entity_id", str(self.entity_id))
        object.__setattr__(self, "captured_at_ms", int(self.captured_at_ms))
        if self.accuracy_m is not None:
            acc = float(self.accuracy_m)
            # NaN/negative accuracy from a sensor means "unknown"
            object.__setattr__(self, "accuracy_m", acc if math.isfinite(acc) and acc >= 0 else None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "ts_ms": self.captured_at_ms,
            "accuracy_m": self.accuracy_m,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LocationRecord":
        return cls(
            entity_id=str(d["entity_id"]),
            coordinate=Coordinate(d["lat"], d["lon"]),
            captured_at_ms=int(d["ts_ms"]),
            accuracy_m=d.get("accuracy_m"),
        )


__all__ = ["LocationRecord"]
