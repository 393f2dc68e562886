"""sqlite-backed keyed stores.

- `LocationStore`: entity_id -> LocationRecord. A put only lands if it is not
  older than what is stored, so the latest accepted fix wins per entity.
- `AlertStore`: alert_id -> target snapshot. Snapshots are write-once; only
  the active flag may change afterwards.

Both open the same database file lazily and run in autocommit mode.
"""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fieldsync.c2.targeting import AlertTargetSnapshot
from fieldsync.geo.distance import Coordinate
from fieldsync.geo.records import LocationRecord
from fieldsync.infra import paths


class SnapshotExistsError(KeyError):
    """An alert id was written twice."""


def _connect(db_path: Path) -> sqlite3.Connection:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=30, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=3000;")
    return conn


class LocationStore:
    def __init__(self, db_path: Path = paths.DB_PATH):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def _ensure_conn(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        conn = _connect(self.db_path)
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS location(
              entity_id TEXT PRIMARY KEY,
              lat REAL NOT NULL,
              lon REAL NOT NULL,
              ts_ms INTEGER NOT NULL,
              accuracy_m REAL
            );
            """
        )
        self._conn = conn
        return conn

    @staticmethod
    def _row_to_record(row) -> LocationRecord:
        entity_id, lat, lon, ts_ms, acc = row
        return LocationRecord(str(entity_id), Coordinate(float(lat), float(lon)), int(ts_ms), acc)

    def put(self, record: LocationRecord) -> bool:
        """Store record unless a newer one is already held. Returns True if written."""
        conn = self._ensure_conn()
        cur = conn.execute(
            """
            INSERT INTO location(entity_id, lat, lon, ts_ms, accuracy_m) VALUES(?, ?, ?, ?, ?)
            ON CONFLICT(entity_id) DO UPDATE SET
              lat=excluded.lat, lon=excluded.lon, ts_ms=excluded.ts_ms, accuracy_m=excluded.accuracy_m
            WHERE excluded.ts_ms >= location.ts_ms
            """,
            (
                record.entity_id,
                record.coordinate.latitude,
                record.coordinate.longitude,
                record.captured_at_ms,
                record.accuracy_m,
            ),
        )
        return cur.rowcount > 0

    def get(self, entity_id: str) -> Optional[LocationRecord]:
        conn = self._ensure_conn()
        row = conn.execute(
            "SELECT entity_id, lat, lon, ts_ms, accuracy_m FROM location WHERE entity_id=?",
            (str(entity_id),),
        ).fetchone()
        return self._row_to_record(row) if row else None

    def list(self) -> List[LocationRecord]:
        """All records from a single read."""
        conn = self._ensure_conn()
        rows = conn.execute(
            "SELECT entity_id, lat, lon, ts_ms, accuracy_m FROM location ORDER BY entity_id ASC"
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def list_in_time_range(self, start_ms: int, end_ms: int) -> List[LocationRecord]:
        conn = self._ensure_conn()
        rows = conn.execute(
            "SELECT entity_id, lat, lon, ts_ms, accuracy_m FROM location "
            "WHERE ts_ms BETWEEN ? AND ? ORDER BY entity_id ASC",
            (int(start_ms), int(end_ms)),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def delete(self, entity_id: str) -> None:
        conn = self._ensure_conn()
        conn.execute("DELETE FROM location WHERE entity_id=?", (str(entity_id),))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


@dataclass(frozen=True)
class AlertRecord:
    alert_id: str
    entity_id: str
    snapshot: AlertTargetSnapshot
    triggered_at_ms: int
    expires_at_ms: int
    active: bool

    def is_active(self, now_ms: int) -> bool:
        return self.active and int(now_ms) < self.expires_at_ms


class AlertStore:
    def __init__(self, db_path: Path = paths.DB_PATH):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def _ensure_conn(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        conn = _connect(self.db_path)
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS alert(
              alert_id TEXT PRIMARY KEY,
              entity_id TEXT NOT NULL,
              snapshot TEXT NOT NULL,
              triggered_ms INTEGER NOT NULL,
              expires_ms INTEGER NOT NULL,
              active INTEGER DEFAULT 1
            );
            """
        )
        self._conn = conn
        return conn

    _COLS = "alert_id, entity_id, snapshot, triggered_ms, expires_ms, active"

    @staticmethod
    def _row_to_alert(row) -> AlertRecord:
        alert_id, entity_id, snap, trig, exp, active = row
        return AlertRecord(
            alert_id=str(alert_id),
            entity_id=str(entity_id),
            snapshot=AlertTargetSnapshot.from_dict(json.loads(snap)),
            triggered_at_ms=int(trig),
            expires_at_ms=int(exp),
            active=bool(active),
        )

    def put(self, alert: AlertRecord) -> None:
        conn = self._ensure_conn()
        try:
            conn.execute(
                f"INSERT INTO alert({self._COLS}) VALUES(?, ?, ?, ?, ?, ?)",
                (
                    alert.alert_id,
                    alert.entity_id,
                    json.dumps(alert.snapshot.to_dict()),
                    alert.triggered_at_ms,
                    alert.expires_at_ms,
                    int(alert.active),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise SnapshotExistsError(alert.alert_id) from exc

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        conn = self._ensure_conn()
        row = conn.execute(f"SELECT {self._COLS} FROM alert WHERE alert_id=?", (str(alert_id),)).fetchone()
        return self._row_to_alert(row) if row else None

    def list_active(self, now_ms: int) -> List[AlertRecord]:
        conn = self._ensure_conn()
        rows = conn.execute(
            f"SELECT {self._COLS} FROM alert WHERE active=1 AND expires_ms > ? ORDER BY triggered_ms ASC",
            (int(now_ms),),
        ).fetchall()
        return [self._row_to_alert(r) for r in rows]

    def list_all(self) -> List[AlertRecord]:
        conn = self._ensure_conn()
        rows = conn.execute(f"SELECT {self._COLS} FROM alert ORDER BY triggered_ms ASC").fetchall()
        return [self._row_to_alert(r) for r in rows]

    def active_for(self, entity_id: str, now_ms: int) -> Optional[AlertRecord]:
        conn = self._ensure_conn()
        row = conn.execute(
            f"SELECT {self._COLS} FROM alert WHERE entity_id=? AND active=1 AND expires_ms > ? "
            "ORDER BY triggered_ms DESC LIMIT 1",
            (str(entity_id), int(now_ms)),
        ).fetchone()
        return self._row_to_alert(row) if row else None

    def deactivate(self, alert_id: str) -> bool:
        """Clear the active flag. The stored snapshot is left as written."""
        conn = self._ensure_conn()
        cur = conn.execute("UPDATE alert SET active=0 WHERE alert_id=? AND active=1", (str(alert_id),))
        return cur.rowcount > 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


__all__ = ["LocationStore", "AlertStore", "AlertRecord", "SnapshotExistsError"]
