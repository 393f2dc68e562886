"""Great-circle distance on a spherical earth.

Formulas
--------
- Distance (km): haversine on a sphere of radius 6371 km.
- Bearing (degrees): initial navigation bearing from point 1 to point 2,
  normalized to [0, 360), where 0° = North and 90° = East.

`measure_distance` assumes validated input. Build coordinates through
`Coordinate` (or `validate_coordinate`) at the boundary.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

EARTH_RADIUS_KM = 6371.0
M_PER_KM = 1000.0


class InvalidCoordinateError(ValueError):
    """Latitude/longitude outside [-90, 90] / [-180, 180] or not finite."""


def validate_coordinate(lat: float, lon: float) -> tuple[float, float]:
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinateError(f"coordinate must be numeric: ({lat!r}, {lon!r})") from exc
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        raise InvalidCoordinateError(f"coordinate must be finite: ({lat_f}, {lon_f})")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidCoordinateError(f"latitude out of range: {lat_f}")
    if not -180.0 <= lon_f <= 180.0:
        raise InvalidCoordinateError(f"longitude out of range: {lon_f}")
    return lat_f, lon_f


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = validate_coordinate(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    @classmethod
    def from_dict(cls, d: dict) -> "Coordinate":
        """Accepts {lat, lon} or {latitude, longitude}."""
        lat = d["latitude"] if "latitude" in d else d["lat"]
        lon = d["longitude"] if "longitude" in d else d["lon"]
        return cls(lat, lon)

    def to_dict(self) -> dict:
        return {"lat": self.latitude, "lon": self.longitude}


def measure_distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance (kilometers)."""
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push h just past 1 for near-antipodal pairs
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def measure_distance_m(a: Coordinate, b: Coordinate) -> float:
    return measure_distance(a, b) * M_PER_KM


def distances_km(origin: Coordinate, coords: Sequence[Coordinate]) -> np.ndarray:
    """Distances from one origin to many coordinates (kilometers) as a float64 array.

    Each entry is exactly `measure_distance(origin, c)`, so radius masks built
    on this array agree with the scalar distance at the boundary.
    """
    return np.fromiter((measure_distance(origin, c) for c in coords), dtype=np.float64, count=len(coords))


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing (degrees 0–360) from a to b."""
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def should_recenter(current: Coordinate, new: Coordinate, threshold_m: float) -> bool:
    """True when the view center should follow `new` (moved at least threshold_m)."""
    return measure_distance_m(current, new) >= threshold_m


__all__ = [
    "EARTH_RADIUS_KM",
    "M_PER_KM",
    "Coordinate",
    "InvalidCoordinateError",
    "validate_coordinate",
    "measure_distance",
    "measure_distance_m",
    "distances_km",
    "bearing_deg",
    "should_recenter",
]
