from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fieldsync.c2.sos import SosDesk
from fieldsync.geo.distance import Coordinate, bearing_deg
from fieldsync.geo.proximity import count_within_radius, rank_with_distance
from fieldsync.geo.staleness import age_ms, split_online
from fieldsync.infra import paths
from fieldsync.infra.config import Settings, load_settings
from fieldsync.infra.store import AlertRecord, AlertStore, LocationStore
from fieldsync.utils.timebase import now_ms as _now_ms

LOG = logging.getLogger("fieldsync.query")


def nearby(store: LocationStore, center: Coordinate, radius_km: float) -> List[Dict[str, Any]]:
    """Units within radius, nearest first, with distance and bearing from center."""
    return [
        {
            "entity_id": rec.entity_id,
            "distance_km": dist,
            "bearing_deg": bearing_deg(center, rec.coordinate),
            "ts_ms": rec.captured_at_ms,
        }
        for rec, dist in rank_with_distance(center, store.list(), radius_km)
    ]


def fleet_status(store: LocationStore, offline_after_sec: float, now_ms: int) -> Dict[str, Any]:
    online, offline = split_online(store.list(), offline_after_sec, now_ms)
    return {
        "online": [{"entity_id": r.entity_id, "age_ms": age_ms(r, now_ms)} for r in online],
        "offline": [{"entity_id": r.entity_id, "age_ms": age_ms(r, now_ms)} for r in offline],
    }


def _alert_summary(alert: AlertRecord, now_ms: int) -> Dict[str, Any]:
    return {
        "alert_id": alert.alert_id,
        "entity_id": alert.entity_id,
        "active": alert.is_active(now_ms),
        "expires_at_ms": alert.expires_at_ms,
        **alert.snapshot.to_dict(),
    }


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Proximity queries and SOS handling over the location store")
    p.add_argument("--db", type=str, default=str(paths.DB_PATH), help="sqlite store path")
    p.add_argument("--config", type=str, default=str(paths.CONFIG), help="config.yaml path")
    p.add_argument("--audit", type=str, default=str(paths.SOS_AUDIT), help="SOS audit JSONL sink")
    p.add_argument("--now-ms", type=int, default=None, help="Override clock (epoch ms)")
    p.add_argument("--log-level", type=str, default="INFO", help="Logging level (e.g., INFO, DEBUG)")
    sub = p.add_subparsers(dest="cmd", required=True)

    for name in ("near", "count"):
        q = sub.add_parser(name, help=f"{name} units around a point")
        q.add_argument("--lat", type=float, required=True)
        q.add_argument("--lon", type=float, required=True)
        q.add_argument("--radius-km", type=float, default=None, help="Defaults to matching.radius_km")

    sub.add_parser("fleet", help="Online/offline split of all units")

    t = sub.add_parser("sos", help="Raise an SOS for an entity")
    t.add_argument("--entity", type=str, required=True)
    t.add_argument("--lat", type=float, required=True)
    t.add_argument("--lon", type=float, required=True)

    d = sub.add_parser("sos-off", help="Clear an entity's active SOS")
    d.add_argument("--entity", type=str, required=True)

    sub.add_parser("alerts", help="List active SOS alerts")
    return p


def run(args: argparse.Namespace, settings: Settings) -> Any:
    now = int(args.now_ms) if args.now_ms is not None else _now_ms()
    store = LocationStore(Path(args.db))
    alerts = AlertStore(Path(args.db))
    desk = SosDesk(store, alerts, settings.matching, settings.sos_duration_sec, Path(args.audit))
    try:
        if args.cmd in ("near", "count"):
            center = Coordinate(args.lat, args.lon)
            radius = args.radius_km if args.radius_km is not None else settings.matching.radius_km
            if args.cmd == "near":
                return nearby(store, center, radius)
            return {"count": count_within_radius(center, radius, store.list())}
        if args.cmd == "fleet":
            return fleet_status(store, settings.fleet.offline_after_sec, now)
        if args.cmd == "sos":
            return _alert_summary(desk.trigger(args.entity, Coordinate(args.lat, args.lon), now), now)
        if args.cmd == "sos-off":
            alert = desk.deactivate(args.entity, now)
            return {"deactivated": alert.alert_id if alert else None}
        if args.cmd == "alerts":
            return [_alert_summary(a, now) for a in desk.active(now)]
        raise ValueError(f"unknown command {args.cmd!r}")
    finally:
        store.close()
        alerts.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    try:
        out = run(args, load_settings(Path(args.config)))
    except ValueError as e:
        LOG.error("query failed: %s", e)
        return 2
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
