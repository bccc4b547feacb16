"""
messages.py — Notification text for one alert at one escalation step.

Three variants are produced per step:

    body        full text (email, voice script source)
    short_body  single line for SMS / WhatsApp
    subject     email subject

Example (critical, step 1 waiting 5 minutes for acknowledgment):

    CRITICAL TSUNAMI ALERT

    Vessel: Pacific Star
    Distance: 393 km
    Wave Height: 3.9 m
    ETA: 56 minutes

    IMMEDIATE EVACUATION REQUIRED. Move to safe harbor or deep water.

    ESCALATION STEP 1 of 3
    Please acknowledge within 5 minutes:
    http://localhost:8000/api/v1/alerts/ALR-1A2B3C/acknowledge
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from backend.app.escalation.models import Alert, EscalationStep


@dataclass(frozen=True)
class NotificationMessage:
    alert_id: str
    severity: str
    subject: str
    body: str
    short_body: str
    step_number: int
    ack_url: Optional[str] = None


def ack_url_for(alert_id: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/{alert_id}/acknowledge"


def build_message(
    alert: Alert,
    step: EscalationStep,
    total_steps: int,
    ack_base_url: str,
) -> NotificationMessage:
    """Render the notification for ``alert`` at ``step``."""
    severity = alert.severity.value.upper()
    kind = alert.type.value.upper()
    vessel = alert.vessel_name or alert.vessel_id
    ack_url = ack_url_for(alert.alert_id, ack_base_url) if step.waits_for_ack else None

    lines: List[str] = [f"{severity} {kind} ALERT", "", f"Vessel: {vessel}"]
    facts: List[str] = []
    threat = alert.threat
    if threat is not None:
        lines.append(f"Distance: {round(threat.distance_km)} km")
        lines.append(f"Wave Height: {threat.wave_height_m:.1f} m")
        lines.append(f"ETA: {round(threat.eta_minutes)} minutes")
        facts = [
            f"{round(threat.distance_km)}km",
            f"{threat.wave_height_m:.1f}m",
            f"ETA {round(threat.eta_minutes)}min",
        ]

    lines += ["", alert.recommendation]
    if alert.message:
        lines += ["", alert.message]
    lines += ["", f"ESCALATION STEP {step.step_number} of {total_steps}"]
    if ack_url:
        lines.append(f"Please acknowledge within {step.timeout_minutes:g} minutes:")
        lines.append(ack_url)

    short = f"{severity} {kind}: {vessel}"
    if facts:
        short += " " + ", ".join(facts)
    short += f". {alert.recommendation.split('.')[0]}."
    if ack_url:
        short += f" Ack: {ack_url}"

    return NotificationMessage(
        alert_id=alert.alert_id,
        severity=alert.severity.value,
        subject=f"[{severity}] {kind.title()} alert for {vessel}",
        body="\n".join(lines),
        short_body=short,
        step_number=step.step_number,
        ack_url=ack_url,
    )
