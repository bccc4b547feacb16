"""
test_simulation.py — Tests for the manual tsunami scenario runner.

Covers:
    • Dry run (default): alerts created, attempts marked dry, no adapter
    • Live run: adapters called, notifications counted
    • Vessel subset selection and vessels without a fix
    • Invalid input (coordinates, magnitude, depth)
    • Result structure (summary, logs, epicenter)

Run with:
    pytest tests/test_simulation.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.core.config import get_settings
from backend.app.core.errors import InvalidCoordinate, InvalidParameter
from backend.app.escalation.models import Channel, Contact, ContactRole
from backend.app.escalation.orchestrator import EscalationOrchestrator
from backend.app.escalation.policy import default_policies
from backend.app.monitoring.simulation import TsunamiScenario, simulate_tsunami
from backend.app.stores.memory import AlertStore, ContactStore, PolicyStore, VesselPositionStore
from backend.app.threat.models import FaultType, VesselPosition


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

def _make_fleet():
    vessels = VesselPositionStore()
    seen = datetime.now(timezone.utc) - timedelta(minutes=10)
    vessels.record(VesselPosition("V001", 35.6, 139.8, seen, "Pacific Star"))
    vessels.record(VesselPosition("V002", 36.5, 141.2, seen, "Ocean Dawn"))
    vessels.record(VesselPosition("V003", -33.9, 151.3, seen, "Southern Cross"))
    vessels.register("V004", "No Fix Yet")

    contacts = ContactStore()
    for vid in ("V001", "V002", "V003"):
        contacts.assign(vid, Contact(
            f"{vid}-CAPT", f"Captain {vid}", ContactRole.CAPTAIN,
            phone="+10000000", whatsapp="+10000000",
        ))
    return vessels, contacts


def _run(clock, scenario: TsunamiScenario, adapters=None):
    calls = []

    def _record(channel):
        async def _send(contact, message):
            calls.append((channel.value, contact.contact_id))
        return _send

    async def go():
        vessels, contacts = _make_fleet()
        alerts = AlertStore()
        orchestrator = EscalationOrchestrator(
            policies=PolicyStore(default_policies()),
            contacts=contacts,
            alerts=alerts,
            adapters=adapters or {c: _record(c) for c in Channel},
            timer_factory=clock,
            delivery_timeout=1.0,
        )
        try:
            result = await simulate_tsunami(
                scenario, vessels=vessels, alerts=alerts,
                orchestrator=orchestrator, config=get_settings(),
            )
        finally:
            await orchestrator.shutdown()
        return result, alerts

    result, alerts = asyncio.run(go())
    return result, alerts, calls


TOHOKU = dict(epicenter_lat=38.2, epicenter_lon=142.8, magnitude=8.2)


# ═══════════════════════════════════════════════════════════════════════════
# Scenarios
# ═══════════════════════════════════════════════════════════════════════════

class TestDryRun:
    """Default scenarios never reach an adapter."""

    def test_alerts_without_delivery(self, clock):
        result, alerts, calls = _run(clock, TsunamiScenario(**TOHOKU))

        assert result["success"] is True
        assert result["dryRun"] is True
        assert calls == []
        assert result["summary"]["alertsCreated"] == 2
        for attempt in (a for alert in alerts.all() for a in alerts.attempts_for(alert.alert_id)):
            assert attempt.dry_run is True

    def test_dry_run_counts_notifications(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(**TOHOKU))
        # captain on sms + whatsapp for each of two vessels
        assert result["summary"]["notificationsSent"] == 4

    def test_out_of_range_and_unfixed_vessels_excluded(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(**TOHOKU))
        affected = {v["vesselId"] for v in result["affectedVessels"]}
        assert affected == {"V001", "V002"}
        assert result["summary"]["totalVessels"] == 4
        assert result["summary"]["affectedVessels"] == 2


class TestLiveRun:
    """``send_notifications`` routes through the adapters."""

    def test_adapters_called(self, clock):
        result, _, calls = _run(clock, TsunamiScenario(**TOHOKU, send_notifications=True))
        assert result["dryRun"] is False
        assert sorted(calls) == [
            ("sms", "V001-CAPT"), ("sms", "V002-CAPT"),
            ("whatsapp", "V001-CAPT"), ("whatsapp", "V002-CAPT"),
        ]
        for alert in result["alerts"]:
            assert alert["escalation"]["escalationStarted"] is True
            assert alert["escalationPolicyId"] == "tsunami-default"


class TestVesselSelection:
    """Restrict the scenario to named vessels."""

    def test_subset(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(**TOHOKU, vessel_ids=["V001"]))
        assert [v["vesselId"] for v in result["affectedVessels"]] == ["V001"]
        assert result["summary"]["totalVessels"] == 1

    def test_unknown_vessel_ignored(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(**TOHOKU, vessel_ids=["NOPE"]))
        assert result["affectedVessels"] == []
        assert result["alerts"] == []


class TestResultShape:
    """Test the response document."""

    def test_fields(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(
            **TOHOKU, depth_km=25.0, fault_type=FaultType.NORMAL, fault_strike_deg=200.0,
        ))
        assert result["epicenter"] == {"lat": 38.2, "lon": 142.8}
        assert result["magnitude"] == 8.2
        assert result["depth"] == 25.0
        assert result["faultType"] == "normal"
        assert result["event"]["source"] == "simulation"
        assert result["tsunamiSpeed"] == pytest.approx(421.4, abs=3.0)
        assert result["errors"] == []

    def test_logs_cover_each_stage(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(**TOHOKU))
        stages = {entry["stage"] for entry in result["logs"]}
        assert {"event", "fleet", "assessment", "escalation"} <= stages

    def test_weak_event_no_alerts(self, clock):
        result, _, _ = _run(clock, TsunamiScenario(
            epicenter_lat=38.2, epicenter_lon=160.0, magnitude=4.0, depth_km=200.0,
        ))
        assert result["summary"]["alertsCreated"] == 0
        assert result["summary"]["affectedVessels"] == 0
        assert result["tsunamiSpeed"] is None


class TestInvalidInput:
    """Malformed scenarios are rejected before any work."""

    def test_bad_latitude(self, clock):
        with pytest.raises(InvalidCoordinate):
            _run(clock, TsunamiScenario(epicenter_lat=91.0, epicenter_lon=0.0, magnitude=8.0))

    def test_negative_magnitude(self, clock):
        with pytest.raises(InvalidParameter):
            _run(clock, TsunamiScenario(epicenter_lat=10.0, epicenter_lon=140.0, magnitude=-1.0))

    def test_negative_depth(self, clock):
        with pytest.raises(InvalidParameter):
            _run(clock, TsunamiScenario(
                epicenter_lat=10.0, epicenter_lon=140.0, magnitude=7.0, depth_km=-3.0,
            ))
