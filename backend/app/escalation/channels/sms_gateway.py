"""
sms_gateway.py — SMS delivery channel.

    Payload: ≤160 chars (GSM 7-bit); longer text is truncated with "..."
    and the alert reference is always kept.

    "[CRITICAL] CRITICAL TSUNAMI: Pacific Star 393km, 3.9m, ETA 56min.
     IMMEDIATE EVACUATION REQUIRED. Ref:1A2B3C4D"

Default provider is ``simulation``: the message is logged and reported
as accepted. Any other provider name is rejected with DeliveryFailed.
"""

from __future__ import annotations

import logging

from backend.app.core.errors import DeliveryFailed
from backend.app.escalation.messages import NotificationMessage
from backend.app.escalation.models import Channel, Contact, DeliveryReceipt

logger = logging.getLogger(__name__)

SMS_MAX_GSM7 = 160


def format_sms(message: NotificationMessage) -> str:
    """Fit the short body into one 160-char segment."""
    suffix = f" Ref:{message.alert_id[-8:]}"
    body = message.short_body
    available = SMS_MAX_GSM7 - len(suffix)
    if len(body) > available:
        body = body[: available - 3] + "..."
    return f"{body}{suffix}"


def send(
    contact: Contact,
    message: NotificationMessage,
    *,
    provider: str = "simulation",
) -> DeliveryReceipt:
    """Send an SMS to ``contact.phone``."""
    if not contact.phone:
        raise DeliveryFailed(Channel.SMS.value, contact.contact_id, "no phone number on file")

    sms_body = format_sms(message)

    if provider != "simulation":
        raise DeliveryFailed(
            Channel.SMS.value, contact.contact_id, f"unknown SMS provider: {provider}",
        )

    logger.info(
        "[SMS] Alert %s → %s (%s): %d chars → '%s'",
        message.alert_id,
        contact.phone,
        contact.name,
        len(sms_body),
        sms_body[:80] + ("..." if len(sms_body) > 80 else ""),
        extra={"alert_id": message.alert_id, "channel": Channel.SMS.value},
    )
    return DeliveryReceipt(
        channel=Channel.SMS,
        contact_id=contact.contact_id,
        provider=provider,
        provider_response={
            "mode": "simulated",
            "message_length": len(sms_body),
            "phone": contact.phone,
        },
    )
