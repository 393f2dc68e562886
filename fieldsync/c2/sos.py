from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from fieldsync.c2.targeting import select_nearest_k
from fieldsync.geo.distance import Coordinate
from fieldsync.infra import paths
from fieldsync.infra.config import MatchingConfig
from fieldsync.infra.store import AlertRecord, AlertStore, LocationStore
from fieldsync.utils.timebase import sec_to_ms

LOG = logging.getLogger("fieldsync.sos")

AUDIT_PATH = paths.SOS_AUDIT


def _append_audit(rec: Dict, audit_path: Path = AUDIT_PATH) -> None:
    audit_path.parent.mkdir(parents=True, exist_ok=True)
    with audit_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(rec) + "\n")


class SosDesk:
    """SOS lifecycle over the location and alert stores.

    Targets are selected once, when the SOS is raised, from a single read of
    the responder pool. Raising again while an SOS is active returns the
    existing alert unchanged; there is no retargeting.
    """

    def __init__(
        self,
        responders: LocationStore,
        alerts: AlertStore,
        matching: MatchingConfig,
        duration_sec: float = 60.0,
        audit_path: Path = AUDIT_PATH,
    ):
        self.responders = responders
        self.alerts = alerts
        self.matching = matching
        self.duration_ms = int(sec_to_ms(duration_sec))
        self.audit_path = Path(audit_path)

    def trigger(self, entity_id: str, origin: Coordinate, now_ms: int) -> AlertRecord:
        entity_id = str(entity_id)
        existing = self.alerts.active_for(entity_id, now_ms)
        if existing is not None:
            LOG.info("SOS already active for %s (%s)", entity_id, existing.alert_id)
            return existing

        pool = [r for r in self.responders.list() if r.entity_id != entity_id]
        snapshot = select_nearest_k(
            origin,
            self.matching.radius_km,
            self.matching.k,
            pool,
            self.matching.stale_after_sec,
            now_ms,
        )
        alert_id = f"sos_{entity_id}_{int(now_ms)}"
        n = 1
        # re-raised within the same millisecond after a deactivate
        while self.alerts.get(alert_id) is not None:
            alert_id = f"sos_{entity_id}_{int(now_ms)}_{n}"
            n += 1
        alert = AlertRecord(
            alert_id=alert_id,
            entity_id=entity_id,
            snapshot=snapshot,
            triggered_at_ms=int(now_ms),
            expires_at_ms=int(now_ms) + self.duration_ms,
            active=True,
        )
        self.alerts.put(alert)
        _append_audit(
            {
                "alert_id": alert.alert_id,
                "entity_id": entity_id,
                "state": "TRIGGERED",
                "ts_ms": alert.triggered_at_ms,
                "targets": list(snapshot.target_ids),
            },
            self.audit_path,
        )
        if not snapshot.targets:
            LOG.warning("SOS %s: no responders within %.3f km", alert.alert_id, self.matching.radius_km)
        return alert

    def deactivate(self, entity_id: str, now_ms: int) -> Optional[AlertRecord]:
        """Clear the entity's active SOS, if any. Returns the alert as it was."""
        alert = self.alerts.active_for(entity_id, now_ms)
        if alert is None:
            return None
        if self.alerts.deactivate(alert.alert_id):
            _append_audit(
                {"alert_id": alert.alert_id, "entity_id": alert.entity_id, "state": "DEACTIVATED", "ts_ms": int(now_ms)},
                self.audit_path,
            )
        return alert

    def active(self, now_ms: int) -> List[AlertRecord]:
        return self.alerts.list_active(now_ms)

    def alerts_for_responder(self, responder_id: str, now_ms: int) -> List[AlertRecord]:
        """Active alerts whose snapshot names this responder."""
        return [a for a in self.active(now_ms) if str(responder_id) in a.snapshot.target_ids]


__all__ = ["SosDesk", "AUDIT_PATH"]
