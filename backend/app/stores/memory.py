"""
memory.py — In-process collaborator stores.

The core reads vessels, contacts and policies and writes alerts, attempts
and settings through these narrow interfaces. Persistence is not part of
this service; a database-backed store only has to offer the same methods.

    VesselPositionStore   register / record / latest / fleet_positions
    ContactStore          assign / for_vessel
    PolicyStore           add / all / select
    AlertStore            save / get / find / record_attempt / attempts_for
                          has_bulletin / save_bulletin
    SettingsStore         load / save
"""

from __future__ import annotations

import bisect
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.app.escalation.models import (
    Alert,
    AlertType,
    Contact,
    EscalationPolicy,
    NotificationAttempt,
)
from backend.app.escalation.policy import select_policy, validate_policy
from backend.app.threat.models import ThreatSeverity, VesselPosition


# ═══════════════════════════════════════════════════════════════════════════
# Vessels
# ═══════════════════════════════════════════════════════════════════════════

class VesselPositionStore:
    """Position history per vessel, queried as of an assessment time."""

    def __init__(self) -> None:
        self._names: Dict[str, str] = {}
        self._history: Dict[str, List[Tuple[datetime, VesselPosition]]] = {}

    def register(self, vessel_id: str, name: str = "") -> None:
        self._names[vessel_id] = name or self._names.get(vessel_id, "")
        self._history.setdefault(vessel_id, [])

    def record(self, position: VesselPosition) -> None:
        self.register(position.vessel_id, position.vessel_name)
        history = self._history[position.vessel_id]
        keys = [ts for ts, _ in history]
        history.insert(bisect.bisect_right(keys, position.observed_at), (position.observed_at, position))

    def vessel_ids(self) -> List[str]:
        return list(self._history)

    def name_of(self, vessel_id: str) -> str:
        return self._names.get(vessel_id, "")

    def latest(self, vessel_id: str, at: Optional[datetime] = None) -> Optional[VesselPosition]:
        """Most recent position observed at or before ``at`` (default: now)."""
        history = self._history.get(vessel_id) or []
        at = at or datetime.now(timezone.utc)
        keys = [ts for ts, _ in history]
        index = bisect.bisect_right(keys, at)
        return history[index - 1][1] if index else None

    def fleet_positions(self, at: Optional[datetime] = None) -> List[Optional[VesselPosition]]:
        """Latest position per registered vessel; None for vessels without a fix."""
        return [self.latest(vessel_id, at) for vessel_id in self._history]


# ═══════════════════════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════════════════════

class ContactStore:
    def __init__(self) -> None:
        self._by_vessel: Dict[str, List[Contact]] = {}

    def assign(self, vessel_id: str, contact: Contact) -> None:
        self._by_vessel.setdefault(vessel_id, []).append(contact)

    def for_vessel(self, vessel_id: str, roles: Optional[Iterable[str]] = None) -> List[Contact]:
        """Contacts of a vessel, filtered by role, ascending priority."""
        contacts = self._by_vessel.get(vessel_id, [])
        if roles is not None:
            wanted = set(roles)
            contacts = [c for c in contacts if c.role in wanted]
        return sorted(contacts, key=lambda c: c.priority)


# ═══════════════════════════════════════════════════════════════════════════
# Policies
# ═══════════════════════════════════════════════════════════════════════════

class PolicyStore:
    def __init__(self, policies: Optional[Iterable[EscalationPolicy]] = None) -> None:
        self._policies: List[EscalationPolicy] = []
        for policy in policies or []:
            self.add(policy)

    def add(self, policy: EscalationPolicy) -> None:
        self._policies.append(validate_policy(policy))

    def all(self) -> List[EscalationPolicy]:
        return list(self._policies)

    def get(self, policy_id: str) -> Optional[EscalationPolicy]:
        return next((p for p in self._policies if p.policy_id == policy_id), None)

    def select(self, alert_type: AlertType, severity: ThreatSeverity) -> Optional[EscalationPolicy]:
        return select_policy(self._policies, alert_type, severity)


# ═══════════════════════════════════════════════════════════════════════════
# Alerts, attempts and bulletins
# ═══════════════════════════════════════════════════════════════════════════

class AlertStore:
    """Alerts by id, append-only attempt log, and stored hazard bulletins."""

    def __init__(self) -> None:
        self._alerts: Dict[str, Alert] = {}
        self._attempts: Dict[str, List[NotificationAttempt]] = {}
        self._bulletins: Dict[str, Dict[str, Any]] = {}

    def save(self, alert: Alert) -> Alert:
        self._alerts[alert.alert_id] = alert
        return alert

    def get(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def all(self) -> List[Alert]:
        return list(self._alerts.values())

    def find(self, vessel_id: str, event_id: str) -> Optional[Alert]:
        """The alert already raised for this (vessel, event) pair, if any."""
        for alert in self._alerts.values():
            if alert.vessel_id == vessel_id and alert.event_id == event_id:
                return alert
        return None

    def record_attempt(self, attempt: NotificationAttempt) -> None:
        self._attempts.setdefault(attempt.alert_id, []).append(attempt)

    def attempts_for(self, alert_id: str) -> List[NotificationAttempt]:
        return list(self._attempts.get(alert_id, []))

    def attempt_count(self) -> int:
        return sum(len(rows) for rows in self._attempts.values())

    def has_bulletin(self, source_id: str) -> bool:
        return source_id in self._bulletins

    def save_bulletin(self, source_id: str, bulletin: Dict[str, Any]) -> None:
        self._bulletins[source_id] = bulletin


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

class SettingsStore:
    """Holds the last saved settings snapshot (last writer wins)."""

    def __init__(self) -> None:
        self._snapshot: Any = None

    def load(self) -> Any:
        return self._snapshot

    def save(self, snapshot: Any) -> None:
        self._snapshot = snapshot
