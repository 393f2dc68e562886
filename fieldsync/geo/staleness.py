"""Record age classification.

The threshold is always a parameter: matching excludes records after a short
age, while fleet displays only badge a unit offline after a longer one.
"""
from __future__ import annotations

from typing import Iterable, List, Tuple

from fieldsync.geo.records import LocationRecord
from fieldsync.utils.timebase import sec_to_ms


def age_ms(record: LocationRecord, now_ms: int) -> int:
    return int(now_ms) - record.captured_at_ms


def is_stale(record: LocationRecord, threshold_sec: float, now_ms: int) -> bool:
    return age_ms(record, now_ms) > sec_to_ms(threshold_sec)


def split_online(
    records: Iterable[LocationRecord], offline_after_sec: float, now_ms: int
) -> Tuple[List[LocationRecord], List[LocationRecord]]:
    """Partition into (online, offline) preserving input order."""
    online: List[LocationRecord] = []
    offline: List[LocationRecord] = []
    for rec in records:
        (offline if is_stale(rec, offline_after_sec, now_ms) else online).append(rec)
    return online, offline


__all__ = ["age_ms", "is_stale", "split_online"]
