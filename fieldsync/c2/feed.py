from __future__ import annotations

import argparse
import json
import logging
import math
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional

from fieldsync.geo.distance import Coordinate, InvalidCoordinateError
from fieldsync.infra import paths
from fieldsync.infra.config import load_settings
from fieldsync.infra.store import LocationStore
from fieldsync.signal.sessions import ConditioningSessions
from fieldsync.utils.timebase import ts_ms_from_fields

# -----------------------------------------------------------------------------
# feed: raw device fixes (JSONL) -> conditioned LocationRecords in the store.
#  - Timestamps normalized to epoch ms (ts_ms / ts_ns / ts seconds)
#  - Entity id from entity_id or uid, always a string
#  - Never crash on malformed input; warn once per error kind
#  - Optional JSONL sink of per-fix conditioning outcomes
# -----------------------------------------------------------------------------

LOG = logging.getLogger("fieldsync.feed")

_WARNED_TEXTS: set[str] = set()


def _warn_once(msg: str) -> None:
    if msg not in _WARNED_TEXTS:
        _WARNED_TEXTS.add(msg)
        LOG.warning(msg)


def _accuracy(raw: Dict[str, Any]) -> Optional[float]:
    val = raw.get("accuracy_m", raw.get("accuracy"))
    if val is None:
        return None
    acc = float(val)
    return acc if math.isfinite(acc) else None


def normalize_fix_dict(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Validate one raw fix. Returns the normalized dict or None (logged) if unusable."""
    try:
        ent = raw.get("entity_id", raw.get("uid"))
        if ent is None or str(ent) == "":
            raise ValueError("missing entity_id")
        ts_ms = ts_ms_from_fields(raw)
        if ts_ms is None:
            raise ValueError("missing timestamp")
        coord = Coordinate(raw["lat"], raw["lon"])
        return {
            "entity_id": str(ent),
            "lat": coord.latitude,
            "lon": coord.longitude,
            "ts_ms": int(ts_ms),
            "accuracy_m": _accuracy(raw),
        }
    except InvalidCoordinateError as e:
        _warn_once(f"Skipping fix with invalid coordinate: {e}")
    except (KeyError, TypeError, ValueError) as e:
        _warn_once(f"Skipping malformed fix: {e!r}")
    return None


def _append_jsonl(out_fp, rows) -> None:
    for r in rows:
        out_fp.write(json.dumps(r) + "\n")
    out_fp.flush()


def ingest_fix(fix: Dict[str, Any], sessions: ConditioningSessions, store: LocationStore) -> Dict[str, Any]:
    """Condition one normalized fix and store the reported estimate if accepted."""
    raw = Coordinate(fix["lat"], fix["lon"])
    upd = sessions.ingest_fix(fix["entity_id"], raw, fix["accuracy_m"], fix["ts_ms"])
    stored = store.put(upd.record) if upd.record is not None else False
    return {
        "entity_id": fix["entity_id"],
        "ts_ms": fix["ts_ms"],
        "display": upd.display.label,
        "display_pos": upd.display.coordinate.to_dict() if upd.display.coordinate else None,
        "reported": upd.reported.label,
        "reported_pos": upd.reported.coordinate.to_dict() if upd.reported.coordinate else None,
        "stored": stored,
    }


def stream_fixes(
    fixes_path: str | Path,
    store: LocationStore,
    sessions: ConditioningSessions,
    out_path: Optional[str | Path] = None,
    follow: bool = False,
    poll_interval: float = 0.2,
) -> Counter:
    """Run a fix file through conditioning into the store.

    Returns counts of reported-profile outcomes plus 'skipped' for unusable lines.
    """
    fixes_p = Path(fixes_path)
    counts: Counter = Counter()
    out_fp = None
    if out_path is not None:
        out_p = Path(out_path)
        out_p.parent.mkdir(parents=True, exist_ok=True)
        out_fp = out_p.open("a", encoding="utf-8")

    try:
        pos = 0
        while True:
            batch = []
            if fixes_p.exists():
                with fixes_p.open("r", encoding="utf-8") as fp:
                    fp.seek(pos)
                    while True:
                        prev = fp.tell()
                        line = fp.readline()
                        if not line:
                            break
                        if not line.endswith("\n"):
                            fp.seek(prev)
                            break
                        pos = fp.tell()
                        if not line.strip():
                            continue
                        try:
                            raw = json.loads(line)
                        except json.JSONDecodeError as e:
                            _warn_once(f"Skipping malformed JSON line: {e}")
                            counts["skipped"] += 1
                            continue
                        fix = normalize_fix_dict(raw) if isinstance(raw, dict) else None
                        if fix is None:
                            counts["skipped"] += 1
                            continue
                        outcome = ingest_fix(fix, sessions, store)
                        counts[outcome["reported"]] += 1
                        batch.append(outcome)
            else:
                _warn_once(f"Fix file not found: {fixes_p}")

            if out_fp is not None and batch:
                _append_jsonl(out_fp, batch)

            if not follow:
                break
            if not batch:
                time.sleep(poll_interval)
    finally:
        if out_fp is not None:
            out_fp.close()

    LOG.info("feed done: %s", dict(counts))
    return counts


# ------------------------------- CLI -----------------------------------------

def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Condition raw location fixes into the location store")
    p.add_argument("--fixes", type=str, required=True, help="Path to fixes.jsonl")
    p.add_argument("--db", type=str, default=str(paths.DB_PATH), help="sqlite store path")
    p.add_argument("--config", type=str, default=str(paths.CONFIG), help="config.yaml path")
    p.add_argument("--out", type=str, default=None, help="Optional JSONL sink of per-fix outcomes")
    p.add_argument("--follow", action="store_true", help="Tail the fix file for new data")
    p.add_argument("--poll", type=float, default=0.2, help="Follow poll interval seconds")
    p.add_argument("--log-level", type=str, default="INFO", help="Logging level (e.g., INFO, DEBUG)")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    try:
        settings = load_settings(Path(args.config))
        store = LocationStore(Path(args.db))
        sessions = ConditioningSessions(settings.display, settings.reported)
        stream_fixes(
            args.fixes,
            store,
            sessions,
            out_path=args.out,
            follow=bool(args.follow),
            poll_interval=float(args.poll),
        )
        store.close()
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        LOG.error("feed failed: %s", e)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
