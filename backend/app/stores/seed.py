"""
seed.py — Load a fleet roster (vessels, positions, contacts, policies) from JSON.

    {
      "vessels":  [{"vesselId": "V1", "name": "Pacific Star",
                    "lat": 35.6, "lon": 139.8, "observedAt": "2024-03-11T05:40:00Z"}],
      "contacts": [{"vesselId": "V1", "contactId": "C1", "name": "Capt. Mori",
                    "role": "CAPTAIN", "priority": 1, "phone": "+81...",
                    "notifyOn": ["critical", "high"]}],
      "policies": [ ...EscalationPolicy documents, camelCase... ]
    }

The built-in default policies apply only when the file names none.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.escalation.models import (
    AlertType,
    Channel,
    Contact,
    EscalationPolicy,
    EscalationStep,
)
from backend.app.stores.memory import ContactStore, PolicyStore, VesselPositionStore
from backend.app.threat.models import ThreatSeverity, VesselPosition

logger = logging.getLogger(__name__)


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VesselDoc(_Doc):
    vessel_id: str
    name: str = ""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lon: Optional[float] = Field(None, ge=-180, le=180)
    observed_at: Optional[datetime] = None


class ContactDoc(_Doc):
    vessel_id: str
    contact_id: str
    name: str
    role: str
    priority: int = 1
    phone: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    notify_on: List[ThreatSeverity] = Field(default_factory=list)


class StepDoc(_Doc):
    step_number: int
    wait_minutes: float = Field(0, ge=0)
    channels: List[Channel]
    contact_roles: List[str]
    require_acknowledgment: bool = True
    timeout_minutes: float = Field(0, ge=0)


class PolicyDoc(_Doc):
    id: str
    name: str
    event_types: List[AlertType]
    severity_levels: List[ThreatSeverity]
    active: bool = True
    steps: List[StepDoc]

    def to_policy(self) -> EscalationPolicy:
        return EscalationPolicy(
            policy_id=self.id,
            name=self.name,
            event_types=self.event_types,
            severity_levels=self.severity_levels,
            active=self.active,
            steps=[EscalationStep(**step.model_dump()) for step in self.steps],
        )


class FleetDocument(_Doc):
    vessels: List[VesselDoc] = Field(default_factory=list)
    contacts: List[ContactDoc] = Field(default_factory=list)
    policies: List[PolicyDoc] = Field(default_factory=list)


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def load_fleet(
    path: str,
    *,
    vessels: VesselPositionStore,
    contacts: ContactStore,
    policies: Optional[PolicyStore] = None,
) -> FleetDocument:
    """Populate the stores from a roster file; returns the parsed document."""
    document = FleetDocument.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))

    for vessel in document.vessels:
        vessels.register(vessel.vessel_id, vessel.name)
        if vessel.lat is not None and vessel.lon is not None:
            vessels.record(VesselPosition(
                vessel_id=vessel.vessel_id,
                vessel_name=vessel.name,
                latitude=vessel.lat,
                longitude=vessel.lon,
                observed_at=_aware(vessel.observed_at),
            ))

    for doc in document.contacts:
        contacts.assign(doc.vessel_id, Contact(**doc.model_dump(exclude={"vessel_id"})))

    if policies is not None:
        for policy in document.policies:
            policies.add(policy.to_policy())

    logger.info(
        "Loaded fleet roster %s: %d vessel(s), %d contact(s), %d polic(ies)",
        path, len(document.vessels), len(document.contacts), len(document.policies),
    )
    return document
