"""
voice_call.py — Automated voice call channel.

The call script is the short body read twice, followed by the
acknowledgment instruction when the step is waiting for one:

    "This is an automated tsunami alert. <short body>. I repeat. <short body>.
     Press 1 to acknowledge."
"""

from __future__ import annotations

import logging
import re

from backend.app.core.errors import DeliveryFailed
from backend.app.escalation.messages import NotificationMessage
from backend.app.escalation.models import Channel, Contact, DeliveryReceipt

logger = logging.getLogger(__name__)

_URL = re.compile(r"\s*Ack: \S+")


def build_script(message: NotificationMessage) -> str:
    spoken = _URL.sub("", message.short_body).rstrip(".")
    script = f"This is an automated tsunami alert. {spoken}. I repeat. {spoken}."
    if message.ack_url:
        script += " Press 1 to acknowledge."
    return script


def send(
    contact: Contact,
    message: NotificationMessage,
    *,
    provider: str = "simulation",
) -> DeliveryReceipt:
    """Place a voice call to ``contact.phone``."""
    if not contact.phone:
        raise DeliveryFailed(Channel.VOICE.value, contact.contact_id, "no phone number on file")
    if provider != "simulation":
        raise DeliveryFailed(
            Channel.VOICE.value, contact.contact_id, f"unknown voice provider: {provider}",
        )

    script = build_script(message)
    logger.info(
        "[VOICE] Alert %s → %s (%s): %d chars script",
        message.alert_id, contact.phone, contact.name, len(script),
        extra={"alert_id": message.alert_id, "channel": Channel.VOICE.value},
    )
    return DeliveryReceipt(
        channel=Channel.VOICE,
        contact_id=contact.contact_id,
        provider=provider,
        provider_response={"mode": "simulated", "script": script, "phone": contact.phone},
    )
