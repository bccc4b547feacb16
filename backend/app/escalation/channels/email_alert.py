"""
email_alert.py — Email alert delivery channel.

Email carries the full notification (threat figures, recommendation,
escalation step and acknowledgment link) as plain text plus a minimal
HTML rendering.

    Subject: [CRITICAL] Tsunami alert for Pacific Star
    Body:
        ┌─────────────────────────────────────────┐
        │  CRITICAL TSUNAMI ALERT                  │
        ├─────────────────────────────────────────┤
        │  Vessel / Distance / Wave Height / ETA   │
        │  Recommendation                          │
        │  ESCALATION STEP k of N                  │
        │  [Acknowledge]                           │
        └─────────────────────────────────────────┘
"""

from __future__ import annotations

import html
import logging

from backend.app.core.errors import DeliveryFailed
from backend.app.escalation.messages import NotificationMessage
from backend.app.escalation.models import Channel, Contact, DeliveryReceipt

logger = logging.getLogger(__name__)

_SEVERITY_COLOURS = {
    "low": "#4CAF50",
    "moderate": "#FF9800",
    "high": "#F44336",
    "critical": "#B71C1C",
}


def build_html_body(message: NotificationMessage) -> str:
    colour = _SEVERITY_COLOURS.get(message.severity, "#FF9800")
    paragraphs = "".join(
        f"<p>{html.escape(block).replace(chr(10), '<br>')}</p>"
        for block in message.body.split("\n\n")
    )
    button = ""
    if message.ack_url:
        button = (
            f'<a href="{html.escape(message.ack_url)}" '
            f'style="background:{colour};color:white;padding:10px 20px;'
            f'text-decoration:none;border-radius:4px;">Acknowledge</a>'
        )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;">'
        f'<div style="background:{colour};color:white;padding:16px;">'
        f"<h2 style=\"margin:0;\">{html.escape(message.subject)}</h2></div>"
        f'<div style="border:1px solid #ddd;padding:16px;">{paragraphs}{button}</div>'
        "</div>"
    )


def send(
    contact: Contact,
    message: NotificationMessage,
    *,
    provider: str = "simulation",
) -> DeliveryReceipt:
    """Send the alert email to ``contact.email``."""
    if not contact.email:
        raise DeliveryFailed(Channel.EMAIL.value, contact.contact_id, "no email address on file")
    if provider != "simulation":
        raise DeliveryFailed(
            Channel.EMAIL.value, contact.contact_id, f"unknown email provider: {provider}",
        )

    html_body = build_html_body(message)
    logger.info(
        "[EMAIL] Alert %s → %s (%s): Subject='%s'",
        message.alert_id, contact.email, contact.name, message.subject,
        extra={"alert_id": message.alert_id, "channel": Channel.EMAIL.value},
    )
    return DeliveryReceipt(
        channel=Channel.EMAIL,
        contact_id=contact.contact_id,
        provider=provider,
        provider_response={
            "mode": "simulated",
            "subject": message.subject,
            "html_size": len(html_body),
            "to": contact.email,
        },
    )
