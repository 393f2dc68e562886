from fieldsync.geo.distance import Coordinate
from fieldsync.signal.conditioner import FixStatus
from fieldsync.signal.sessions import ConditioningSessions

from helpers import T0, north_of

START = Coordinate(37.42, -122.08)


def test_profiles_keep_independent_state():
    s = ConditioningSessions()
    s.ingest_fix("amb-1", START, 5.0, T0)
    # 10 m: above display threshold (5 m), below reported threshold (15 m)
    upd = s.ingest_fix("amb-1", north_of(START, 10.0), 5.0, T0 + 12_000)
    assert upd.display.status is FixStatus.SMOOTHED
    assert upd.reported.status is FixStatus.HELD
    assert upd.reported.coordinate == START

    sess = s.get("amb-1")
    assert sess.display is not sess.reported
    assert sess.display.last_accepted != sess.reported.last_accepted
    assert sess.reported.last_accepted == START


def test_record_comes_from_reported_estimate():
    s = ConditioningSessions()
    first = s.ingest_fix("amb-1", START, None, T0)
    assert first.record.coordinate == START
    assert first.record.captured_at_ms == T0

    upd = s.ingest_fix("amb-1", north_of(START, 100.0), 8.0, T0 + 12_000)
    assert upd.reported.status is FixStatus.SMOOTHED
    assert upd.record.coordinate == upd.reported.coordinate
    assert upd.record.entity_id == "amb-1"
    assert upd.record.accuracy_m == 8.0


def test_rejected_fix_produces_no_record():
    s = ConditioningSessions()
    s.ingest_fix("amb-1", START, 5.0, T0)
    upd = s.ingest_fix("amb-1", north_of(START, 30.0), 120.0, T0 + 12_000)
    assert upd.record is None
    assert upd.display.status is FixStatus.REJECTED
    assert s.get("amb-1").statuses["rejected(poor_accuracy)"] == 1


def test_entities_do_not_share_state():
    s = ConditioningSessions()
    s.ingest_fix("a", START, None, T0)
    upd = s.ingest_fix("b", north_of(START, 5000.0), None, T0 + 1)
    assert upd.reported.status is FixStatus.INITIAL
    assert s.get("a").reported.last_raw == START
    s.end_session("a")
    assert s.get("a") is None
    assert s.get("b") is not None
