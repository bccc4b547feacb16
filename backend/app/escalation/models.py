"""
models.py — Data structures for tiered, acknowledgment-driven escalation.

Defines:
    • Channel            — delivery channel enum
    • AlertType          — triggering hazard kind
    • EscalationState    — per-alert state machine position
    • AttemptOutcome     — sent / failed
    • Contact            — a person assigned to a vessel with role + priority
    • EscalationStep     — one tier of a policy
    • EscalationPolicy   — ordered tiers applicable to event types/severities
    • Alert              — the escalated record, one per (vessel, event)
    • NotificationAttempt — append-only audit row per (contact, channel, step)
    • InitiateResult     — what ``initiate`` reports about step 1

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    PENDING(0) ─► DISPATCHING(k) ─► AWAITING_ACK(k) ─┬─► ACKNOWLEDGED
                        ▲                            │
                        └──── timeout, k+1 ≤ N ◄─────┤
                                                     └─► EXHAUSTED

ACKNOWLEDGED and EXHAUSTED are terminal. ``current_step`` only grows and
never exceeds the step count of the policy.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.threat.models import ThreatAssessment, ThreatSeverity


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class Channel(str, Enum):
    """Notification delivery channels."""
    SMS      = "sms"
    VOICE    = "voice"
    EMAIL    = "email"
    WHATSAPP = "whatsapp"


class AlertType(str, Enum):
    EARTHQUAKE = "earthquake"
    TSUNAMI    = "tsunami"


class EscalationState(str, Enum):
    PENDING      = "pending"
    DISPATCHING  = "dispatching"
    AWAITING_ACK = "awaiting_ack"
    ACKNOWLEDGED = "acknowledged"
    EXHAUSTED    = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (EscalationState.ACKNOWLEDGED, EscalationState.EXHAUSTED)


class AttemptOutcome(str, Enum):
    SENT   = "sent"
    FAILED = "failed"


class ContactRole:
    """Vessel assignment roles referenced by policy steps."""
    CAPTAIN           = "CAPTAIN"
    CHIEF_OFFICER     = "CHIEF_OFFICER"
    CHIEF_ENGINEER    = "CHIEF_ENGINEER"
    MANAGER           = "MANAGER"
    OWNER             = "OWNER"
    EMERGENCY_CONTACT = "EMERGENCY_CONTACT"


# ═══════════════════════════════════════════════════════════════════════════
# Roster
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Contact:
    """
    A person assigned to a vessel.

    ``role`` and ``priority`` belong to the vessel assignment; lower
    priority numbers are contacted first. An empty ``notify_on`` means
    every severity.
    """
    contact_id: str
    name: str
    role: str
    priority: int = 1
    phone: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    notify_on: List[ThreatSeverity] = field(default_factory=list)

    def wants(self, severity: ThreatSeverity) -> bool:
        return not self.notify_on or ThreatSeverity(severity) in self.notify_on

    def address_for(self, channel: Channel) -> Optional[str]:
        """Destination for a channel, or None when the contact lacks it."""
        if channel in (Channel.SMS, Channel.VOICE):
            return self.phone
        if channel is Channel.EMAIL:
            return self.email
        return self.whatsapp


# ═══════════════════════════════════════════════════════════════════════════
# Policies
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EscalationStep:
    """
    One escalation tier.

    ``wait_minutes`` is measured from the end of the previous step's wait;
    ``timeout_minutes == 0`` completes the step right after dispatch.
    """
    step_number: int
    wait_minutes: float = 0.0
    channels: List[Channel] = field(default_factory=lambda: [Channel.SMS])
    contact_roles: List[str] = field(default_factory=list)
    require_acknowledgment: bool = True
    timeout_minutes: float = 0.0

    @property
    def waits_for_ack(self) -> bool:
        return self.require_acknowledgment and self.timeout_minutes > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepNumber": self.step_number,
            "waitMinutes": self.wait_minutes,
            "channels": [c.value for c in self.channels],
            "contactRoles": list(self.contact_roles),
            "requireAcknowledgment": self.require_acknowledgment,
            "timeoutMinutes": self.timeout_minutes,
        }


@dataclass
class EscalationPolicy:
    policy_id: str
    name: str
    event_types: List[AlertType]
    severity_levels: List[ThreatSeverity]
    steps: List[EscalationStep]
    active: bool = True

    def matches(self, alert_type: AlertType, severity: ThreatSeverity) -> bool:
        return (
            self.active
            and AlertType(alert_type) in self.event_types
            and ThreatSeverity(severity) in self.severity_levels
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "name": self.name,
            "eventTypes": [t.value for t in self.event_types],
            "severityLevels": [s.value for s in self.severity_levels],
            "active": self.active,
            "steps": [s.to_dict() for s in self.steps],
        }


# ═══════════════════════════════════════════════════════════════════════════
# Alerts and audit trail
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Alert:
    """Escalated alert for one vessel and one triggering event."""
    vessel_id: str
    type: AlertType
    severity: ThreatSeverity
    message: str
    alert_id: str = field(default_factory=lambda: f"ALR-{uuid.uuid4().hex[:10].upper()}")
    event_id: str = ""
    vessel_name: str = ""
    threat: Optional[ThreatAssessment] = None
    escalation_policy_id: Optional[str] = None
    current_step: int = 0
    escalation_state: EscalationState = EscalationState.PENDING
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.acknowledged or self.escalation_state.is_terminal

    @property
    def recommendation(self) -> str:
        if self.severity is ThreatSeverity.CRITICAL:
            return "IMMEDIATE EVACUATION REQUIRED. Move to safe harbor or deep water."
        if self.severity is ThreatSeverity.HIGH:
            return "Prepare for evacuation. Monitor conditions closely."
        return "Monitor tsunami warnings and prepare safety procedures."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertId": self.alert_id,
            "vesselId": self.vessel_id,
            "vesselName": self.vessel_name,
            "eventId": self.event_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "threat": self.threat.to_dict() if self.threat else None,
            "escalationPolicyId": self.escalation_policy_id,
            "currentStep": self.current_step,
            "escalationState": self.escalation_state.value,
            "acknowledged": self.acknowledged,
            "acknowledgedBy": self.acknowledged_by,
            "acknowledgedAt": (
                self.acknowledged_at.isoformat() if self.acknowledged_at else None
            ),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationAttempt:
    """One dispatch of one channel to one contact inside one step."""
    alert_id: str
    step_number: int
    contact_id: str
    channel: Channel
    outcome: AttemptOutcome
    attempted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dry_run: bool = False
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertId": self.alert_id,
            "stepNumber": self.step_number,
            "contactId": self.contact_id,
            "channel": self.channel.value,
            "outcome": self.outcome.value,
            "attemptedAt": self.attempted_at.isoformat(),
            "dryRun": self.dry_run,
            "error": self.error_message,
        }


@dataclass
class InitiateResult:
    """Outcome of step 1 at the time ``initiate`` returns."""
    success: bool
    notifications_sent: int
    escalation_started: bool
    policy_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "notificationsSent": self.notifications_sent,
            "escalationStarted": self.escalation_started,
            "policyId": self.policy_id,
        }


@dataclass(frozen=True)
class DeliveryReceipt:
    """Returned by a channel adapter when the provider accepted the message."""
    channel: Channel
    contact_id: str
    provider: str
    provider_response: Dict[str, Any] = field(default_factory=dict)
