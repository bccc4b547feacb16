"""
test_seed.py — Tests for the JSON fleet roster loader.

Run with:
    pytest tests/test_seed.py -v
"""

from __future__ import annotations

import json

import httpx
import pytest
from pydantic import ValidationError

from backend.app.core.config import Settings
from backend.app.core.container import build_container
from backend.app.escalation.models import Channel
from backend.app.stores.memory import ContactStore, PolicyStore, VesselPositionStore
from backend.app.stores.seed import load_fleet
from backend.app.threat.models import ThreatSeverity


ROSTER = {
    "vessels": [
        {"vesselId": "V1", "name": "Pacific Star", "lat": 35.6, "lon": 139.8,
         "observedAt": "2024-03-11T05:40:00Z"},
        {"vesselId": "V2", "name": "Dry Dock"},
    ],
    "contacts": [
        {"vesselId": "V1", "contactId": "C1", "name": "Capt. Mori", "role": "CAPTAIN",
         "phone": "+81900000001", "notifyOn": ["critical", "high"]},
        {"vesselId": "V1", "contactId": "C2", "name": "Ops Desk", "role": "MANAGER",
         "priority": 2, "email": "ops@example.com"},
    ],
    "policies": [
        {"id": "fleet-tsunami", "name": "Fleet tsunami", "eventTypes": ["tsunami"],
         "severityLevels": ["critical"],
         "steps": [
             {"stepNumber": 1, "channels": ["sms"], "contactRoles": ["CAPTAIN"],
              "timeoutMinutes": 3},
             {"stepNumber": 2, "waitMinutes": 3, "channels": ["email"],
              "contactRoles": ["MANAGER"], "requireAcknowledgment": False},
         ]},
    ],
}


def _write(tmp_path, document) -> str:
    path = tmp_path / "fleet.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestLoadFleet:

    def test_populates_stores(self, tmp_path):
        vessels, contacts, policies = VesselPositionStore(), ContactStore(), PolicyStore()
        load_fleet(_write(tmp_path, ROSTER), vessels=vessels, contacts=contacts, policies=policies)

        assert sorted(vessels.vessel_ids()) == ["V1", "V2"]
        fix = vessels.latest("V1")
        assert fix.latitude == 35.6
        assert fix.observed_at.tzinfo is not None
        assert vessels.latest("V2") is None
        assert vessels.name_of("V2") == "Dry Dock"

        captain = contacts.for_vessel("V1", roles=["CAPTAIN"])[0]
        assert captain.notify_on == [ThreatSeverity.CRITICAL, ThreatSeverity.HIGH]

        policy = policies.get("fleet-tsunami")
        assert [s.step_number for s in policy.steps] == [1, 2]
        assert policy.steps[1].channels == [Channel.EMAIL]
        assert policy.steps[1].require_acknowledgment is False

    def test_out_of_range_position_rejected(self, tmp_path):
        bad = {"vessels": [{"vesselId": "V9", "lat": 120.0, "lon": 0.0}]}
        with pytest.raises(ValidationError):
            load_fleet(_write(tmp_path, bad), vessels=VesselPositionStore(), contacts=ContactStore())

    def test_unknown_channel_rejected(self, tmp_path):
        bad = json.loads(json.dumps(ROSTER))
        bad["policies"][0]["steps"][0]["channels"] = ["pager"]
        with pytest.raises(ValidationError):
            load_fleet(_write(tmp_path, bad), vessels=VesselPositionStore(),
                       contacts=ContactStore(), policies=PolicyStore())


class TestContainerSeeding:

    def _build(self, path):
        return build_container(
            Settings(FLEET_SEED_FILE=path),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={})
            )),
        )

    def test_roster_policies_replace_defaults(self, tmp_path):
        container = self._build(_write(tmp_path, ROSTER))
        assert [p.policy_id for p in container.policies.all()] == ["fleet-tsunami"]
        assert container.vessels.latest("V1") is not None

    def test_defaults_when_roster_has_no_policies(self, tmp_path):
        container = self._build(_write(tmp_path, {"vessels": ROSTER["vessels"]}))
        ids = {p.policy_id for p in container.policies.all()}
        assert ids == {"tsunami-default", "earthquake-default"}
