"""
assessment.py — Threat of an earthquake to one vessel or a whole fleet.

Flow per vessel:

    distance, bearing   ← epicenter → vessel
    speed               ← ocean depth estimated at the epicenter
    wave height         ← magnitude, depth, distance, fault, directivity
    ETA                 ← distance / speed
    severity            ← wave height + ETA
    confidence          ← known geometry, confirmation, proximity

Fleet assessment drops vessels beyond ``max_range_km`` and vessels with
no usable position; the result is returned unsorted.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from backend.app.core.errors import InvalidCoordinate, InvalidParameter
from backend.app.geophysics import calculator
from backend.app.geophysics.ocean import estimate_ocean_depth_km
from backend.app.threat.models import (
    EarthquakeEvent,
    ThreatAssessment,
    ThreatSeverity,
    VesselPosition,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RANGE_KM = 1000.0


def assess(
    event: EarthquakeEvent,
    position: VesselPosition,
    *,
    max_range_km: float = DEFAULT_MAX_RANGE_KM,
) -> ThreatAssessment:
    """Compute the ThreatAssessment of ``event`` for one vessel."""
    lat0, lon0 = event.epicenter_lat, event.epicenter_lon

    dist = calculator.distance(lat0, lon0, position.latitude, position.longitude)
    brg = calculator.bearing(lat0, lon0, position.latitude, position.longitude)
    speed = calculator.tsunami_speed(estimate_ocean_depth_km(lat0, lon0))
    height = calculator.wave_height(
        event.magnitude,
        event.depth_km,
        dist,
        event.fault_type,
        brg,
        strike_deg=event.fault_strike_deg,
        fault_length_km=event.fault_length_km,
        fault_width_km=event.fault_width_km,
    )
    arrival = calculator.eta(dist, speed)
    severity = calculator.classify_severity(height, arrival)
    confidence = calculator.estimate_confidence(
        dist,
        max_range_km,
        strike_known=event.fault_strike_deg is not None,
        dimensions_known=bool(event.fault_length_km and event.fault_width_km),
        tsunami_confirmed=event.tsunami_confirmed,
    )

    return ThreatAssessment(
        vessel_id=position.vessel_id,
        vessel_name=position.vessel_name,
        earthquake_id=event.event_id,
        distance_km=dist,
        bearing_deg=brg,
        tsunami_speed_kmh=speed,
        wave_height_m=height,
        eta_minutes=arrival,
        severity=severity,
        confidence=confidence,
    )


def assess_fleet(
    event: EarthquakeEvent,
    positions: Iterable[Optional[VesselPosition]],
    max_range_km: float = DEFAULT_MAX_RANGE_KM,
) -> List[ThreatAssessment]:
    """
    Assess every vessel with a known position within ``max_range_km``.

    Parameters
    ----------
    event : EarthquakeEvent
    positions : iterable of VesselPosition | None
        ``None`` entries (vessel without a fix) and vessels whose fix is
        out of range are skipped; the rest of the fleet is still assessed.
    max_range_km : float
        Vessels strictly farther than this are excluded.

    Returns
    -------
    list[ThreatAssessment]
        Unsorted; callers order by severity or distance as needed.
    """
    calculator.validate_coordinate(event.epicenter_lat, event.epicenter_lon)
    threats: List[ThreatAssessment] = []
    skipped = 0

    for position in positions:
        if position is None:
            skipped += 1
            continue
        try:
            threat = assess(event, position, max_range_km=max_range_km)
        except (InvalidCoordinate, InvalidParameter) as exc:
            logger.warning(
                "Skipping vessel %s for event %s: %s",
                position.vessel_id, event.event_id, exc,
                extra={"vessel_id": position.vessel_id, "event_id": event.event_id},
            )
            skipped += 1
            continue
        if threat.distance_km > max_range_km:
            continue
        threats.append(threat)

    logger.debug(
        "Event %s: %d vessel(s) within %.0f km, %d without a usable position",
        event.event_id, len(threats), max_range_km, skipped,
        extra={"event_id": event.event_id},
    )
    return threats


def qualifies_for_notification(
    threat: ThreatAssessment,
    min_severity: ThreatSeverity = ThreatSeverity.MODERATE,
    min_confidence: float = 0.3,
) -> bool:
    """Severity and confidence must both reach their thresholds."""
    return (
        threat.severity.at_least(ThreatSeverity(min_severity))
        and threat.confidence >= min_confidence
    )
