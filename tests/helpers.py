from fieldsync.geo.distance import EARTH_RADIUS_KM, Coordinate
from fieldsync.geo.records import LocationRecord

T0 = 1_700_000_000_000  # epoch ms

# metres per degree of latitude on the model sphere
M_PER_DEG = EARTH_RADIUS_KM * 1000.0 * 3.141592653589793 / 180.0


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    return Coordinate(origin.latitude + meters / M_PER_DEG, origin.longitude)


def rec(entity_id, coord, ts_ms=T0, acc=None) -> LocationRecord:
    return LocationRecord(entity_id, coord, ts_ms, acc)
