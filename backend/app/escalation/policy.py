"""
policy.py — Escalation policy validation and selection.

Selection picks the first active policy, in store order, whose
``event_types`` and ``severity_levels`` both cover the alert.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from backend.app.core.errors import InvalidParameter
from backend.app.escalation.models import (
    AlertType,
    Channel,
    ContactRole,
    EscalationPolicy,
    EscalationStep,
)
from backend.app.threat.models import ThreatSeverity


def validate_policy(policy: EscalationPolicy) -> EscalationPolicy:
    """
    Check step numbering and timings.

    Steps must be numbered 1..N with no gaps, have non-negative wait and
    timeout, and name at least one channel.
    """
    if not policy.steps:
        raise InvalidParameter("steps", [], f"policy {policy.policy_id} has no steps")

    for expected, step in enumerate(policy.steps, start=1):
        if step.step_number != expected:
            raise InvalidParameter(
                "step_number", step.step_number,
                f"expected {expected} in policy {policy.policy_id}",
            )
        if step.wait_minutes < 0:
            raise InvalidParameter("wait_minutes", step.wait_minutes)
        if step.timeout_minutes < 0:
            raise InvalidParameter("timeout_minutes", step.timeout_minutes)
        if not step.channels:
            raise InvalidParameter(
                "channels", [], f"step {step.step_number} names no channel",
            )
    return policy


def select_policy(
    policies: Iterable[EscalationPolicy],
    alert_type: AlertType,
    severity: ThreatSeverity,
) -> Optional[EscalationPolicy]:
    for policy in policies:
        if policy.matches(alert_type, severity):
            return policy
    return None


def _step(number, wait, channels, roles, ack, timeout) -> EscalationStep:
    return EscalationStep(
        step_number=number,
        wait_minutes=wait,
        channels=[Channel(c) for c in channels],
        contact_roles=list(roles),
        require_acknowledgment=ack,
        timeout_minutes=timeout,
    )


def default_policies() -> List[EscalationPolicy]:
    """Policies a fresh deployment starts with."""
    return [
        EscalationPolicy(
            policy_id="tsunami-default",
            name="Tsunami escalation",
            event_types=[AlertType.TSUNAMI],
            severity_levels=[ThreatSeverity.CRITICAL, ThreatSeverity.HIGH, ThreatSeverity.MODERATE],
            steps=[
                _step(1, 0, ["sms", "whatsapp"],
                      [ContactRole.CAPTAIN, ContactRole.CHIEF_OFFICER], True, 2),
                _step(2, 2, ["voice", "sms", "whatsapp"],
                      [ContactRole.CAPTAIN, ContactRole.CHIEF_OFFICER, ContactRole.CHIEF_ENGINEER],
                      True, 5),
                _step(3, 7, ["voice", "whatsapp", "email"],
                      [ContactRole.MANAGER, ContactRole.OWNER, ContactRole.EMERGENCY_CONTACT],
                      False, 0),
            ],
        ),
        EscalationPolicy(
            policy_id="earthquake-default",
            name="Earthquake escalation",
            event_types=[AlertType.EARTHQUAKE],
            severity_levels=[ThreatSeverity.CRITICAL, ThreatSeverity.HIGH],
            steps=[
                _step(1, 0, ["sms"], [ContactRole.CAPTAIN], True, 5),
                _step(2, 5, ["sms", "voice"],
                      [ContactRole.CAPTAIN, ContactRole.CHIEF_OFFICER], True, 10),
                _step(3, 15, ["voice", "whatsapp"],
                      [ContactRole.MANAGER, ContactRole.OWNER], False, 0),
            ],
        ),
    ]
