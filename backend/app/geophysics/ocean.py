"""
ocean.py — Coarse ocean-depth and ocean-proximity heuristics.

Neither function uses a real bathymetry or coastline dataset. They give
plausible inputs to the propagation model until such a dataset is wired
in through the ``ocean_predicate`` hook of the monitor.

Depth profile (distance d from the central Pacific, 0°N 160°W):

    d ≤ 2000 km     200 m + 3800 m · d/2000        (shelf → abyssal)
    d > 2000 km     max(200, 4000 − 0.5 · (d − 2000)) m

    result clamped to [50, 6000] m
"""

from __future__ import annotations

from typing import Callable, Tuple

from backend.app.geophysics.calculator import distance, validate_coordinate

PACIFIC_CENTRE: Tuple[float, float] = (0.0, -160.0)

MIN_DEPTH_M = 50.0
MAX_DEPTH_M = 6000.0

# Ocean basin bounding boxes: (min_lat, max_lat, min_lon, max_lon)
# Longitude ranges with min > max wrap across the antimeridian.
OCEAN_BASINS = {
    "pacific":           (-60.0, 60.0, 100.0, -60.0),
    "northwest_pacific": (10.0, 50.0, 140.0, 180.0),
    "indian":            (-60.0, 30.0, 20.0, 120.0),
    "atlantic":          (-60.0, 70.0, -80.0, 20.0),
}

OceanPredicate = Callable[[float, float], bool]


def estimate_ocean_depth_km(latitude: float, longitude: float) -> float:
    """Representative water depth (km) between the epicenter and open ocean."""
    d = distance(PACIFIC_CENTRE[0], PACIFIC_CENTRE[1], latitude, longitude)

    if d <= 2000.0:
        depth_m = 200.0 + 3800.0 * min(d / 2000.0, 1.0)
    else:
        depth_m = max(200.0, 4000.0 - (d - 2000.0) * 0.5)

    depth_m = min(MAX_DEPTH_M, max(MIN_DEPTH_M, depth_m))
    return depth_m / 1000.0


def _in_box(latitude: float, longitude: float, box: Tuple[float, float, float, float]) -> bool:
    min_lat, max_lat, min_lon, max_lon = box
    if not (min_lat <= latitude <= max_lat):
        return False
    if min_lon <= max_lon:
        return min_lon <= longitude <= max_lon
    return longitude >= min_lon or longitude <= max_lon


def basin_for(latitude: float, longitude: float) -> str:
    """Name of the first basin box containing the point, or ``""``."""
    validate_coordinate(latitude, longitude)
    for name, box in OCEAN_BASINS.items():
        if _in_box(latitude, longitude, box):
            return name
    return ""


def is_near_ocean(latitude: float, longitude: float) -> bool:
    """Default coastal/ocean proximity predicate."""
    return bool(basin_for(latitude, longitude))
