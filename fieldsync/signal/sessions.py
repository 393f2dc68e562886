from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

from fieldsync.geo.distance import Coordinate
from fieldsync.geo.records import LocationRecord
from fieldsync.signal.conditioner import (
    DISPLAY_PROFILE,
    REPORTED_PROFILE,
    ConditioningProfile,
    ConditioningState,
    FixResult,
    condition_fix,
)

LOG = logging.getLogger("fieldsync.sessions")


@dataclass
class EntitySession:
    entity_id: str
    display: Optional[ConditioningState] = None
    reported: Optional[ConditioningState] = None
    statuses: Counter = field(default_factory=Counter)  # reported-profile outcomes


@dataclass(frozen=True)
class SessionUpdate:
    display: FixResult
    reported: FixResult
    record: Optional[LocationRecord]


class ConditioningSessions:
    """Keyed store of per-entity conditioning state.

    Each entity carries two independent (state, profile) pairs: display and
    reported. The same raw fix is run through both; they never share state.
    Only the reported estimate becomes a `LocationRecord`.
    """

    def __init__(
        self,
        display_profile: ConditioningProfile = DISPLAY_PROFILE,
        reported_profile: ConditioningProfile = REPORTED_PROFILE,
    ):
        self.display_profile = display_profile
        self.reported_profile = reported_profile
        self.sessions: Dict[str, EntitySession] = {}

    def get(self, entity_id: str) -> Optional[EntitySession]:
        return self.sessions.get(str(entity_id))

    def ingest_fix(
        self,
        entity_id: str,
        raw: Coordinate,
        accuracy_m: Optional[float],
        now_ms: int,
    ) -> SessionUpdate:
        entity_id = str(entity_id)
        sess = self.sessions.setdefault(entity_id, EntitySession(entity_id))

        sess.display, disp = condition_fix(entity_id, sess.display, raw, accuracy_m, self.display_profile, now_ms)
        sess.reported, rep = condition_fix(entity_id, sess.reported, raw, accuracy_m, self.reported_profile, now_ms)
        sess.statuses[rep.label] += 1

        if not rep.accepted:
            LOG.debug("entity=%s fix %s (accuracy=%s)", entity_id, rep.label, accuracy_m)
            return SessionUpdate(disp, rep, None)

        record = LocationRecord(
            entity_id=entity_id,
            coordinate=rep.coordinate,
            captured_at_ms=sess.reported.last_accepted_at_ms,
            accuracy_m=accuracy_m,
        )
        return SessionUpdate(disp, rep, record)

    def end_session(self, entity_id: str) -> None:
        self.sessions.pop(str(entity_id), None)


__all__ = ["EntitySession", "SessionUpdate", "ConditioningSessions"]
