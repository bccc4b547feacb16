"""
whatsapp.py — WhatsApp message channel.

WhatsApp has no 160-char limit but is read on a phone lock screen, so the
short body is used with a bold severity header:

    "*CRITICAL TSUNAMI ALERT*\n<short body>"
"""

from __future__ import annotations

import logging

from backend.app.core.errors import DeliveryFailed
from backend.app.escalation.messages import NotificationMessage
from backend.app.escalation.models import Channel, Contact, DeliveryReceipt

logger = logging.getLogger(__name__)

WHATSAPP_MAX_CHARS = 1024


def format_whatsapp(message: NotificationMessage) -> str:
    text = f"*{message.severity.upper()} TSUNAMI ALERT*\n{message.short_body}"
    return text[:WHATSAPP_MAX_CHARS]


def send(
    contact: Contact,
    message: NotificationMessage,
    *,
    provider: str = "simulation",
) -> DeliveryReceipt:
    """Send a WhatsApp message to ``contact.whatsapp``."""
    if not contact.whatsapp:
        raise DeliveryFailed(
            Channel.WHATSAPP.value, contact.contact_id, "no WhatsApp number on file",
        )
    if provider != "simulation":
        raise DeliveryFailed(
            Channel.WHATSAPP.value, contact.contact_id, f"unknown WhatsApp provider: {provider}",
        )

    text = format_whatsapp(message)
    logger.info(
        "[WHATSAPP] Alert %s → %s (%s): %d chars",
        message.alert_id, contact.whatsapp, contact.name, len(text),
        extra={"alert_id": message.alert_id, "channel": Channel.WHATSAPP.value},
    )
    return DeliveryReceipt(
        channel=Channel.WHATSAPP,
        contact_id=contact.contact_id,
        provider=provider,
        provider_response={"mode": "simulated", "message_length": len(text), "to": contact.whatsapp},
    )
