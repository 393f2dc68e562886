import json

from fieldsync.c2.feed import main, normalize_fix_dict, stream_fixes
from fieldsync.infra.store import LocationStore
from fieldsync.signal.sessions import ConditioningSessions

T0_NS = 1_700_000_000_000 * 1_000_000


def test_normalize_timestamp_units():
    base = {"entity_id": "a", "lat": 1.0, "lon": 2.0}
    assert normalize_fix_dict({**base, "ts_ns": T0_NS})["ts_ms"] == 1_700_000_000_000
    assert normalize_fix_dict({**base, "ts": 1_700_000_000.5})["ts_ms"] == 1_700_000_000_500
    assert normalize_fix_dict({**base, "ts_ms": 42})["ts_ms"] == 42


def test_normalize_uid_accuracy_and_rejects():
    fix = normalize_fix_dict({"uid": 7, "lat": 1.0, "lon": 2.0, "ts_ms": 1, "accuracy": 12})
    assert fix["entity_id"] == "7"
    assert fix["accuracy_m"] == 12.0
    assert normalize_fix_dict({"uid": 7, "lat": 1.0, "lon": 2.0, "ts_ms": 1})["accuracy_m"] is None
    assert normalize_fix_dict({"lat": 1.0, "lon": 2.0, "ts_ms": 1}) is None
    assert normalize_fix_dict({"uid": 7, "lat": 1.0, "lon": 2.0}) is None
    assert normalize_fix_dict({"uid": 7, "lat": 95.0, "lon": 2.0, "ts_ms": 1}) is None
    assert normalize_fix_dict({"uid": 7, "lat": "x", "lon": 2.0, "ts_ms": 1}) is None


def _write_fixes(path):
    lines = [
        {"entity_id": "amb-1", "ts_ns": T0_NS, "lat": 52.52, "lon": 13.405, "accuracy_m": 5},
        {"entity_id": "amb-1", "ts_ns": T0_NS + 12 * 10**9, "lat": 52.5210, "lon": 13.405, "accuracy_m": 5},
        {"entity_id": "amb-1", "ts_ns": T0_NS + 13 * 10**9, "lat": 52.5300, "lon": 13.405, "accuracy_m": 500},
        {"entity_id": "pol-1", "ts_ns": T0_NS, "lat": 52.5201, "lon": 13.4051},
        {"entity_id": "pol-2", "ts_ns": T0_NS, "lat": 120.0, "lon": 13.4051},
    ]
    with path.open("w", encoding="utf-8") as f:
        for d in lines:
            f.write(json.dumps(d) + "\n")
        f.write("{ this is not json\n")


def test_stream_conditions_into_store(tmp_path):
    fixes = tmp_path / "fixes.jsonl"
    out = tmp_path / "out" / "conditioned.jsonl"
    _write_fixes(fixes)
    store = LocationStore(tmp_path / "db.sqlite")

    counts = stream_fixes(fixes, store, ConditioningSessions(), out_path=out)

    assert counts["initial"] == 2
    assert counts["smoothed"] == 1
    assert counts["rejected(poor_accuracy)"] == 1
    assert counts["skipped"] == 2

    assert [r.entity_id for r in store.list()] == ["amb-1", "pol-1"]
    amb = store.get("amb-1")
    assert amb.captured_at_ms == 1_700_000_012_000
    assert 52.52 < amb.coordinate.latitude < 52.521

    rows = [json.loads(s) for s in out.read_text(encoding="utf-8").splitlines()]
    assert len(rows) == 4
    assert rows[2]["reported"] == "rejected(poor_accuracy)"
    assert rows[2]["stored"] is False


def test_cli_entrypoint(tmp_path):
    fixes = tmp_path / "fixes.jsonl"
    _write_fixes(fixes)
    db = tmp_path / "db.sqlite"
    rc = main(["--fixes", str(fixes), "--db", str(db), "--config", str(tmp_path / "none.yaml")])
    assert rc == 0
    assert LocationStore(db).get("pol-1") is not None
