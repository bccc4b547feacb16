"""
calculator.py — Pure geophysical functions for tsunami threat estimation.

Provides:
    - Haversine great-circle distance and initial bearing
    - Shallow-water propagation speed from water depth
    - Initial seafloor displacement from magnitude and fault geometry
    - Wave-height attenuation with distance, directivity and fault type
    - ETA and severity classification
    - Assessment confidence

All distances are in **kilometers**, angles in **degrees**, heights in
**meters**. Every function is side-effect free; invalid input raises
immediately and is never defaulted.

═══════════════════════════════════════════════════════════════════════════
WAVE-HEIGHT MODEL
═══════════════════════════════════════════════════════════════════════════

    M₀      = 10^(1.5·Mw + 9.1)                 seismic moment   [N·m]
    L, W    = 10^(0.5·Mw − 1.8), 10^(0.25·Mw − 0.8)   rupture   [km]
    slip    = M₀ / (μ · L · W)                  μ = 3·10¹⁰ Pa    [m]

    Vertical seafloor displacement (simplified Okada):

        thrust       slip · sin(15°)
        normal       slip · sin(60°) · 0.5
        strike-slip  slip · 0.1

    A₀      = displacement · exp(−depth / 100 km)
    A(d)    = A₀ · 1/√(d/200 + 1) · k_fault · D(Δ)

        k_fault      thrust 1.5   normal 0.8   strike-slip 0.3
        D(Δ)         floor + (1 − floor)·|sin Δ|,  Δ = bearing − strike
        floor        thrust 0.3   normal 0.4   strike-slip 0.6

    Thrust ruptures radiate most energy perpendicular to strike; the
    strike-slip pattern is nearly isotropic. Without a known strike the
    directivity factor is 1.

═══════════════════════════════════════════════════════════════════════════
SHALLOW-WATER SPEED
═══════════════════════════════════════════════════════════════════════════

    c = √(g · h)        g = 9.81 m/s², h ≥ 10 m

    h = 4000 m   →  ≈ 713 km/h      (abyssal plain)
    h =  200 m   →  ≈ 159 km/h      (continental shelf)
"""

from __future__ import annotations

import math
from typing import Optional

from backend.app.core.errors import InvalidCoordinate, InvalidParameter, InvalidSpeed
from backend.app.threat.models import FaultType, ThreatSeverity


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6_371.0
GRAVITY_MS2: float = 9.81
SHEAR_MODULUS_PA: float = 3.0e10
MIN_WATER_DEPTH_M: float = 10.0

DEPTH_DECAY_KM: float = 100.0
SPREADING_SCALE_KM: float = 200.0

FAULT_MULTIPLIER = {
    FaultType.THRUST: 1.5,
    FaultType.NORMAL: 0.8,
    FaultType.STRIKE_SLIP: 0.3,
}

DIRECTIVITY_FLOOR = {
    FaultType.THRUST: 0.3,
    FaultType.NORMAL: 0.4,
    FaultType.STRIKE_SLIP: 0.6,
}

# Severity thresholds: (min wave height m, max eta minutes)
CRITICAL_WAVE_M, CRITICAL_ETA_MIN = 3.0, 15.0
HIGH_WAVE_M, HIGH_ETA_MIN = 1.0, 60.0
MODERATE_WAVE_M = 0.3


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_coordinate(latitude: float, longitude: float) -> None:
    """Raise InvalidCoordinate unless |lat| ≤ 90 and |lon| ≤ 180."""
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidCoordinate(latitude, longitude)
    if not (-90.0 <= latitude <= 90.0) or not (-180.0 <= longitude <= 180.0):
        raise InvalidCoordinate(latitude, longitude)


def _require_non_negative(name: str, value: float) -> None:
    if value is None or not math.isfinite(value):
        raise InvalidParameter(name, value, "must be a finite number")
    if value < 0:
        raise InvalidParameter(name, value)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Great-circle distance between two points using the Haversine formula.

    Parameters
    ----------
    lat1, lon1 : float
        First point in decimal degrees.
    lat2, lon2 : float
        Second point in decimal degrees.

    Returns
    -------
    float
        Distance in kilometers (≥ 0, symmetric, 0 for identical points).

    Examples
    --------
    >>> round(distance(38.2, 142.8, 35.6, 139.8))   # Tohoku → Tokyo Bay
    393
    """
    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))

    return EARTH_RADIUS_KM * c


def bearing(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """Initial compass bearing from point 1 to point 2, in [0, 360)."""
    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = (
        math.cos(phi1) * math.sin(phi2)
        - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    )
    theta = math.degrees(math.atan2(y, x))
    return (theta + 360.0) % 360.0


# ---------------------------------------------------------------------------
# Propagation
# ---------------------------------------------------------------------------

def tsunami_speed(water_depth_km: float) -> float:
    """
    Shallow-water wave speed in km/h for a given water depth.

    Depths under 10 m are treated as 10 m so the result is always a
    positive finite speed.
    """
    _require_non_negative("water_depth_km", water_depth_km)
    depth_m = max(water_depth_km * 1000.0, MIN_WATER_DEPTH_M)
    return math.sqrt(GRAVITY_MS2 * depth_m) * 3.6


def initial_displacement(
    magnitude: float,
    depth_km: float,
    fault_type: FaultType,
    fault_length_km: Optional[float] = None,
    fault_width_km: Optional[float] = None,
) -> float:
    """
    Depth-attenuated vertical seafloor displacement at the source (m).

    Rupture length/width default to magnitude scaling relations when the
    event does not carry them.
    """
    _require_non_negative("magnitude", magnitude)
    _require_non_negative("depth_km", depth_km)
    fault_type = FaultType(fault_type)

    moment = 10 ** (1.5 * magnitude + 9.1)
    length_km = fault_length_km or 10 ** (0.5 * magnitude - 1.8)
    width_km = fault_width_km or 10 ** (0.25 * magnitude - 0.8)
    _require_non_negative("fault_length_km", length_km)
    _require_non_negative("fault_width_km", width_km)

    area_m2 = length_km * width_km * 1e6
    slip_m = moment / (SHEAR_MODULUS_PA * area_m2) if area_m2 > 0 else 0.0

    if fault_type is FaultType.THRUST:
        vertical = slip_m * math.sin(math.radians(15.0))
    elif fault_type is FaultType.NORMAL:
        vertical = slip_m * math.sin(math.radians(60.0)) * 0.5
    else:
        vertical = slip_m * 0.1

    return vertical * math.exp(-depth_km / DEPTH_DECAY_KM)


def directivity_factor(
    fault_type: FaultType,
    bearing_deg: float,
    strike_deg: Optional[float] = None,
) -> float:
    """Radiation-pattern weight in [floor, 1]; 1 when strike is unknown."""
    if strike_deg is None:
        return 1.0
    floor = DIRECTIVITY_FLOOR[FaultType(fault_type)]
    offset = math.radians(bearing_deg - strike_deg)
    return floor + (1.0 - floor) * abs(math.sin(offset))


def wave_height(
    magnitude: float,
    depth_km: float,
    distance_km: float,
    fault_type: FaultType,
    bearing_deg: float,
    strike_deg: Optional[float] = None,
    fault_length_km: Optional[float] = None,
    fault_width_km: Optional[float] = None,
) -> float:
    """
    Estimated wave amplitude (m) at ``distance_km`` from the epicenter.

    Parameters
    ----------
    magnitude : float
        Moment magnitude (≥ 0).
    depth_km : float
        Focal depth (≥ 0).
    distance_km : float
        Great-circle distance from epicenter (≥ 0).
    fault_type : FaultType
    bearing_deg : float
        Bearing from epicenter to the target.
    strike_deg : float | None
        Fault strike; enables the directivity term.
    fault_length_km, fault_width_km : float | None
        Rupture dimensions; scaling relations are used when absent.

    Returns
    -------
    float
        Wave height in meters, never negative. Non-increasing in
        ``distance_km`` with the other arguments fixed.
    """
    _require_non_negative("distance_km", distance_km)
    fault_type = FaultType(fault_type)

    source = initial_displacement(
        magnitude, depth_km, fault_type, fault_length_km, fault_width_km,
    )
    spreading = 1.0 / math.sqrt(distance_km / SPREADING_SCALE_KM + 1.0)
    height = (
        source
        * spreading
        * FAULT_MULTIPLIER[fault_type]
        * directivity_factor(fault_type, bearing_deg, strike_deg)
    )
    return max(0.0, height)


def eta(distance_km: float, speed_kmh: float) -> float:
    """Arrival time in minutes: ``distance / speed * 60``."""
    if speed_kmh is None or not speed_kmh > 0:
        raise InvalidSpeed(speed_kmh)
    _require_non_negative("distance_km", distance_km)
    return distance_km / speed_kmh * 60


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_severity(wave_height_m: float, eta_minutes: float) -> ThreatSeverity:
    """
    Map wave height and ETA to a severity band.

    Bands are tested from the top so the higher severity wins ties.

    >>> classify_severity(0.5, 10.0).value
    'critical'
    """
    if wave_height_m >= CRITICAL_WAVE_M or eta_minutes <= CRITICAL_ETA_MIN:
        return ThreatSeverity.CRITICAL
    if wave_height_m >= HIGH_WAVE_M or eta_minutes <= HIGH_ETA_MIN:
        return ThreatSeverity.HIGH
    if wave_height_m >= MODERATE_WAVE_M:
        return ThreatSeverity.MODERATE
    return ThreatSeverity.LOW


def estimate_confidence(
    distance_km: float,
    max_range_km: float,
    *,
    strike_known: bool = False,
    dimensions_known: bool = False,
    tsunami_confirmed: bool = False,
) -> float:
    """
    Confidence in [0, 1] for an assessment.

    Starts at 0.4 and grows with known fault geometry, bulletin
    confirmation and proximity to the source.
    """
    score = 0.4
    if strike_known:
        score += 0.15
    if dimensions_known:
        score += 0.1
    if tsunami_confirmed:
        score += 0.2
    if max_range_km > 0:
        score += 0.15 * max(0.0, 1.0 - distance_km / max_range_km)
    return min(1.0, max(0.0, score))
