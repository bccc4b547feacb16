"""
models.py — Data structures shared by the threat assessment engine.

Defines:
    • FaultType         — focal mechanism of the rupture
    • ThreatSeverity    — low → critical, ordered
    • EarthquakeEvent   — an immutable seismic source record
    • VesselPosition    — latest known fix for one vessel
    • ThreatAssessment  — computed threat of one event to one vessel

═══════════════════════════════════════════════════════════════════════════
SEVERITY BANDS
═══════════════════════════════════════════════════════════════════════════

    Severity     Wave height        or   ETA
    ────────     ───────────             ──────────
    CRITICAL     ≥ 3.0 m                 ≤ 15 min
    HIGH         ≥ 1.0 m                 ≤ 60 min
    MODERATE     ≥ 0.3 m                 —
    LOW          otherwise

The higher band wins whenever thresholds from two bands are met.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class FaultType(str, Enum):
    """Rupture mechanism; drives vertical seafloor displacement."""
    THRUST      = "thrust"
    STRIKE_SLIP = "strike-slip"
    NORMAL      = "normal"


class ThreatSeverity(str, Enum):
    """Threat level of an event to a vessel."""
    LOW      = "low"
    MODERATE = "moderate"
    HIGH     = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "ThreatSeverity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK: Dict[ThreatSeverity, int] = {
    ThreatSeverity.LOW: 1,
    ThreatSeverity.MODERATE: 2,
    ThreatSeverity.HIGH: 3,
    ThreatSeverity.CRITICAL: 4,
}


# ═══════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EarthquakeEvent:
    """
    A seismic source, immutable once recorded.

    ``tsunami_confirmed`` is set when an official bulletin has been
    correlated with the event; it bypasses the coastal heuristic.
    """
    epicenter_lat: float
    epicenter_lon: float
    magnitude: float
    depth_km: float
    fault_type: FaultType = FaultType.THRUST
    fault_strike_deg: Optional[float] = None
    fault_length_km: Optional[float] = None
    fault_width_km: Optional[float] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: f"EQ-{uuid.uuid4().hex[:8].upper()}")
    place: str = ""
    source: str = "manual"
    tsunami_confirmed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "epicenterLat": self.epicenter_lat,
            "epicenterLon": self.epicenter_lon,
            "magnitude": self.magnitude,
            "depth": self.depth_km,
            "faultType": self.fault_type.value,
            "faultStrike": self.fault_strike_deg,
            "faultLength": self.fault_length_km,
            "faultWidth": self.fault_width_km,
            "occurredAt": self.occurred_at.isoformat(),
            "place": self.place,
            "source": self.source,
            "tsunamiConfirmed": self.tsunami_confirmed,
        }


@dataclass(frozen=True)
class VesselPosition:
    """Most recent position of a vessel at or before assessment time."""
    vessel_id: str
    latitude: float
    longitude: float
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    vessel_name: str = ""


@dataclass
class ThreatAssessment:
    """Threat of one earthquake to one vessel; lives for one evaluation pass."""
    vessel_id: str
    earthquake_id: str
    distance_km: float
    bearing_deg: float
    tsunami_speed_kmh: float
    wave_height_m: float
    eta_minutes: float
    severity: ThreatSeverity
    confidence: float
    vessel_name: str = ""
    assessed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vesselId": self.vessel_id,
            "vesselName": self.vessel_name,
            "earthquakeId": self.earthquake_id,
            "distance": round(self.distance_km, 1),
            "bearing": round(self.bearing_deg, 1),
            "tsunamiSpeed": round(self.tsunami_speed_kmh, 1),
            "waveHeight": round(self.wave_height_m, 2),
            "eta": round(self.eta_minutes, 1),
            "severity": self.severity.value,
            "confidence": round(self.confidence, 3),
            "assessedAt": self.assessed_at.isoformat(),
        }
