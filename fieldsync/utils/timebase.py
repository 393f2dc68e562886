"""Single time base for the core: integer epoch milliseconds."""
from __future__ import annotations

import math
import time
from typing import Any, Dict, Optional


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def ns_to_ms(ts_ns: int) -> int:
    return int(ts_ns) // 1_000_000


def s_to_ms(ts_s: float) -> int:
    return int(round(float(ts_s) * 1000.0))


def sec_to_ms(duration_s: float) -> float:
    """Durations stay float so sub-millisecond thresholds are not truncated."""
    return float(duration_s) * 1000.0


def ts_ms_from_fields(raw: Dict[str, Any]) -> Optional[int]:
    """Pick a timestamp out of a raw fix dict and normalize to epoch ms.

    Looks at `ts_ms`, then `ts_ns`, then `ts` (seconds, may be fractional).
    Returns None when none is present.
    """
    if raw.get("ts_ms") is not None:
        return int(raw["ts_ms"])
    if raw.get("ts_ns") is not None:
        return ns_to_ms(int(raw["ts_ns"]))
    if raw.get("ts") is not None:
        ts = float(raw["ts"])
        if not math.isfinite(ts):
            raise ValueError(f"non-finite timestamp: {ts}")
        return s_to_ms(ts)
    return None


__all__ = ["now_ms", "ns_to_ms", "s_to_ms", "sec_to_ms", "ts_ms_from_fields"]
