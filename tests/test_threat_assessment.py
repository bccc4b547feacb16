"""
test_threat_assessment.py — Tests for per-vessel and fleet threat
assessment.

Covers:
    • Single-vessel assessment of the Tohoku scenario
    • Fleet filtering (range cut-off, vessels without a fix)
    • Notification qualification (severity AND confidence)
    • Serialisation of assessments
    • Position history lookups in the vessel store

Run with:
    pytest tests/test_threat_assessment.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.core.errors import InvalidCoordinate
from backend.app.stores.memory import VesselPositionStore
from backend.app.threat.assessment import assess, assess_fleet, qualifies_for_notification
from backend.app.threat.models import (
    EarthquakeEvent,
    FaultType,
    ThreatAssessment,
    ThreatSeverity,
    VesselPosition,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

def _make_event(**overrides) -> EarthquakeEvent:
    defaults = dict(
        epicenter_lat=38.2,
        epicenter_lon=142.8,
        magnitude=8.2,
        depth_km=30.0,
        fault_type=FaultType.THRUST,
        event_id="EQ-TEST",
    )
    defaults.update(overrides)
    return EarthquakeEvent(**defaults)


def _make_position(
    vid: str = "V001",
    lat: float = 35.6,
    lon: float = 139.8,
    name: str = "Pacific Star",
    observed_at: datetime | None = None,
) -> VesselPosition:
    return VesselPosition(
        vessel_id=vid,
        latitude=lat,
        longitude=lon,
        vessel_name=name,
        observed_at=observed_at or datetime.now(timezone.utc),
    )


def _make_threat(severity: ThreatSeverity, confidence: float) -> ThreatAssessment:
    return ThreatAssessment(
        vessel_id="V001",
        earthquake_id="EQ-TEST",
        distance_km=300.0,
        bearing_deg=200.0,
        tsunami_speed_kmh=400.0,
        wave_height_m=1.0,
        eta_minutes=45.0,
        severity=severity,
        confidence=confidence,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Single vessel
# ═══════════════════════════════════════════════════════════════════════════

class TestAssess:
    """Test the Tohoku → Tokyo Bay scenario end to end."""

    def test_distance_and_bearing(self):
        threat = assess(_make_event(), _make_position())
        assert threat.distance_km == pytest.approx(393.3, abs=2.0)
        assert 180.0 < threat.bearing_deg < 270.0

    def test_speed_from_ocean_depth_at_epicenter(self):
        threat = assess(_make_event(), _make_position())
        assert threat.tsunami_speed_kmh == pytest.approx(421.4, abs=3.0)

    def test_wave_height_and_eta(self):
        threat = assess(_make_event(), _make_position())
        assert threat.wave_height_m == pytest.approx(3.94, abs=0.1)
        assert threat.eta_minutes == pytest.approx(56.0, abs=1.0)

    def test_severity_critical(self):
        threat = assess(_make_event(), _make_position())
        assert threat.severity is ThreatSeverity.CRITICAL

    def test_confidence_from_proximity(self):
        threat = assess(_make_event(), _make_position())
        assert threat.confidence == pytest.approx(0.49, abs=0.01)

    def test_confirmation_raises_confidence(self):
        plain = assess(_make_event(), _make_position())
        confirmed = assess(_make_event(tsunami_confirmed=True), _make_position())
        assert confirmed.confidence == pytest.approx(plain.confidence + 0.2)

    def test_carries_identifiers(self):
        threat = assess(_make_event(), _make_position())
        assert threat.vessel_id == "V001"
        assert threat.vessel_name == "Pacific Star"
        assert threat.earthquake_id == "EQ-TEST"

    def test_vessel_at_epicenter(self):
        threat = assess(_make_event(), _make_position(lat=38.2, lon=142.8))
        assert threat.distance_km == 0.0
        assert threat.eta_minutes == 0.0
        assert threat.severity is ThreatSeverity.CRITICAL

    def test_small_deep_event_is_low(self):
        event = _make_event(magnitude=5.0, depth_km=300.0, fault_type=FaultType.STRIKE_SLIP)
        far = _make_position(lat=30.0, lon=150.0)
        threat = assess(event, far)
        assert threat.severity is ThreatSeverity.LOW

    def test_invalid_vessel_coordinate_raises(self):
        with pytest.raises(InvalidCoordinate):
            assess(_make_event(), _make_position(lat=95.0))


class TestThreatToDict:
    """Test serialisation."""

    def test_keys(self):
        d = assess(_make_event(), _make_position()).to_dict()
        for key in ("vesselId", "distance", "bearing", "tsunamiSpeed",
                    "waveHeight", "eta", "severity", "confidence"):
            assert key in d
        assert d["severity"] == "critical"

    def test_rounding(self):
        d = assess(_make_event(), _make_position()).to_dict()
        assert d["waveHeight"] == round(d["waveHeight"], 2)
        assert d["distance"] == round(d["distance"], 1)


# ═══════════════════════════════════════════════════════════════════════════
# Fleet
# ═══════════════════════════════════════════════════════════════════════════

class TestAssessFleet:
    """Test fleet-level filtering."""

    def test_includes_vessels_in_range(self):
        fleet = [_make_position("V001"), _make_position("V002", lat=36.0, lon=141.0)]
        threats = assess_fleet(_make_event(), fleet)
        assert {t.vessel_id for t in threats} == {"V001", "V002"}

    def test_excludes_vessels_beyond_range(self):
        fleet = [_make_position("NEAR"), _make_position("FAR", lat=0.0, lon=-150.0)]
        threats = assess_fleet(_make_event(), fleet, max_range_km=1000)
        assert [t.vessel_id for t in threats] == ["NEAR"]

    def test_range_is_inclusive(self):
        position = _make_position()
        exact = assess(_make_event(), position).distance_km
        assert len(assess_fleet(_make_event(), [position], max_range_km=exact)) == 1
        assert assess_fleet(_make_event(), [position], max_range_km=exact - 1) == []

    def test_skips_vessels_without_position(self):
        threats = assess_fleet(_make_event(), [None, _make_position(), None])
        assert len(threats) == 1

    def test_empty_fleet(self):
        assert assess_fleet(_make_event(), []) == []

    def test_bad_vessel_fix_skipped(self, caplog):
        event = EarthquakeEvent(
            epicenter_lat=38.2, epicenter_lon=142.8, magnitude=8.2, depth_km=30,
        )
        fleet = [
            VesselPosition("BAD", 35.6, 200.0),
            VesselPosition("GOOD", 35.6, 139.8),
        ]
        with caplog.at_level("WARNING", logger="backend.app.threat.assessment"):
            threats = assess_fleet(event, fleet)
        assert [t.vessel_id for t in threats] == ["GOOD"]
        assert any(getattr(r, "vessel_id", None) == "BAD" for r in caplog.records)

    def test_invalid_epicenter_raises(self):
        with pytest.raises(InvalidCoordinate):
            assess_fleet(_make_event(epicenter_lat=120.0), [_make_position()])


class TestQualifiesForNotification:
    """Severity and confidence must both pass."""

    def test_both_pass(self):
        assert qualifies_for_notification(_make_threat(ThreatSeverity.HIGH, 0.5))

    def test_low_severity_rejected(self):
        assert not qualifies_for_notification(_make_threat(ThreatSeverity.LOW, 0.9))

    def test_low_confidence_rejected(self):
        assert not qualifies_for_notification(_make_threat(ThreatSeverity.CRITICAL, 0.2))

    def test_thresholds_inclusive(self):
        assert qualifies_for_notification(
            _make_threat(ThreatSeverity.MODERATE, 0.3),
            min_severity=ThreatSeverity.MODERATE,
            min_confidence=0.3,
        )

    def test_custom_min_severity(self):
        threat = _make_threat(ThreatSeverity.HIGH, 0.9)
        assert not qualifies_for_notification(threat, min_severity=ThreatSeverity.CRITICAL)


# ═══════════════════════════════════════════════════════════════════════════
# Vessel store
# ═══════════════════════════════════════════════════════════════════════════

class TestVesselPositionStore:
    """Test as-of position lookups."""

    def test_latest_at_or_before(self):
        store = VesselPositionStore()
        t0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        store.record(_make_position(lat=30.0, observed_at=t0))
        store.record(_make_position(lat=31.0, observed_at=t0 + timedelta(hours=1)))

        assert store.latest("V001", at=t0 + timedelta(minutes=30)).latitude == 30.0
        assert store.latest("V001", at=t0 + timedelta(hours=2)).latitude == 31.0
        assert store.latest("V001", at=t0 - timedelta(minutes=1)) is None

    def test_out_of_order_records(self):
        store = VesselPositionStore()
        t0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        store.record(_make_position(lat=31.0, observed_at=t0 + timedelta(hours=1)))
        store.record(_make_position(lat=30.0, observed_at=t0))
        assert store.latest("V001", at=t0 + timedelta(hours=3)).latitude == 31.0

    def test_registered_vessel_without_fix(self):
        store = VesselPositionStore()
        store.register("V009", "Ghost Ship")
        store.record(_make_position())
        positions = store.fleet_positions()
        assert None in positions
        assert store.name_of("V009") == "Ghost Ship"
        assert len(assess_fleet(_make_event(), positions)) == 1
