"""
feeds.py — External hazard feeds: tsunami bulletins and recent earthquakes.

Sources:
    • NOAA / NWS CAP alerts     GET {NOAA_ALERTS_URL}?event=Tsunami   (GeoJSON)
    • PTWC event list           GET {PTWC_EVENTS_URL}                 (JSON)
    • USGS FDSN event query     GET {USGS_EARTHQUAKE_URL}             (GeoJSON)

Every transport, HTTP-status or parse failure of a source raises
``FetchFailed(source)``; the monitor skips that source for the tick.

═══════════════════════════════════════════════════════════════════════════
BULLETIN CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

NOAA (NWS severity / certainty):

    extreme + observed              → emergency   (level 5)
    severe  + likely | observed     → warning     (level 4)
    moderate                        → advisory    (level 3)
    anything else                   → watch       (level 2)

PTWC (earthquake parameters):

    M ≥ 8.5 and depth ≤ 35 km       → emergency
    M ≥ 7.5 and depth ≤ 50 km       → warning
    M ≥ 7.0                         → advisory
    otherwise                       → watch

USGS events carry no focal mechanism; they are recorded as thrust, the
dominant tsunamigenic mechanism. The USGS ``tsunami`` flag marks the
event as confirmed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import FetchFailed
from backend.app.threat.models import EarthquakeEvent, FaultType

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Bulletins
# ═══════════════════════════════════════════════════════════════════════════

class BulletinType(str, Enum):
    WATCH     = "watch"
    ADVISORY  = "advisory"
    WARNING   = "warning"
    EMERGENCY = "emergency"


BULLETIN_SEVERITY_LEVEL: Dict[BulletinType, int] = {
    BulletinType.EMERGENCY: 5,
    BulletinType.WARNING: 4,
    BulletinType.ADVISORY: 3,
    BulletinType.WATCH: 2,
}


@dataclass
class TsunamiBulletin:
    """An official tsunami message from NOAA or PTWC."""
    bulletin_id: str  # "<source>-<id>", dedup key
    event_id: str
    source: str
    alert_type: BulletinType
    issued_at: datetime
    location: str = ""
    estimated_wave_height_m: Optional[float] = None
    affected_zones: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    source_earthquake_id: Optional[str] = None

    @property
    def severity_level(self) -> int:
        return BULLETIN_SEVERITY_LEVEL[self.alert_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.bulletin_id,
            "eventId": self.event_id,
            "source": self.source,
            "alertType": self.alert_type.value,
            "severityLevel": self.severity_level,
            "issuedAt": self.issued_at.isoformat(),
            "location": self.location,
            "estimatedWaveHeight": self.estimated_wave_height_m,
            "affectedZones": self.affected_zones,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "sourceEarthquakeId": self.source_earthquake_id,
        }


def classify_noaa(severity: Optional[str], certainty: Optional[str]) -> BulletinType:
    sev = (severity or "").lower()
    cert = (certainty or "").lower()
    if "extreme" in sev and "observed" in cert:
        return BulletinType.EMERGENCY
    if "severe" in sev and ("likely" in cert or "observed" in cert):
        return BulletinType.WARNING
    if "moderate" in sev:
        return BulletinType.ADVISORY
    return BulletinType.WATCH


def classify_ptwc(magnitude: Optional[float], depth_km: Optional[float]) -> BulletinType:
    if not magnitude:
        return BulletinType.WATCH
    depth = depth_km or 0.0
    if magnitude >= 8.5 and depth <= 35:
        return BulletinType.EMERGENCY
    if magnitude >= 7.5 and depth <= 50:
        return BulletinType.WARNING
    if magnitude >= 7.0:
        return BulletinType.ADVISORY
    return BulletinType.WATCH


_WAVE_METERS = (
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:meters?|metres?|m)\s*(?:waves?|high)", re.I),
    re.compile(r"waves?.*?(\d+(?:\.\d+)?)\s*(?:meters?|metres?|m)\b", re.I),
)
_WAVE_FEET = re.compile(r"(\d+(?:\.\d+)?)\s*(?:feet|foot|ft)\s*(?:waves?|high)?", re.I)


def extract_wave_height(description: Optional[str]) -> Optional[float]:
    """Wave height in meters mentioned in bulletin prose, if any."""
    if not description:
        return None
    for pattern in _WAVE_METERS:
        match = pattern.search(description)
        if match:
            return float(match.group(1))
    match = _WAVE_FEET.search(description)
    if match:
        return round(float(match.group(1)) * 0.3048, 2)
    return None


def extract_affected_zones(area_desc: Optional[str]) -> List[str]:
    if not area_desc:
        return []
    return [zone.strip() for zone in re.split(r"[;,]", area_desc) if zone.strip()]


def _parse_time(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value not in (None, "") else None


_BULLETIN_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def parse_noaa_feature(feature: Dict[str, Any]) -> Optional[TsunamiBulletin]:
    """One NOAA CAP feature → TsunamiBulletin; None for non-tsunami alerts."""
    props = feature.get("properties") or {}
    if "tsunami" not in str(props.get("event", "")).lower():
        return None
    bulletin_id = str(props.get("id") or feature.get("id") or "")
    if not bulletin_id:
        return None
    return TsunamiBulletin(
        bulletin_id=f"noaa-{bulletin_id}",
        event_id=bulletin_id,
        source="noaa",
        alert_type=classify_noaa(props.get("severity"), props.get("certainty")),
        issued_at=(
            _parse_time(props.get("sent") or props.get("effective"))
            or datetime.now(timezone.utc)
        ),
        location=props.get("areaDesc") or "Unknown location",
        estimated_wave_height_m=extract_wave_height(props.get("description")),
        affected_zones=extract_affected_zones(props.get("areaDesc")),
    )


def parse_ptwc_event(event: Dict[str, Any]) -> Optional[TsunamiBulletin]:
    """One PTWC event → TsunamiBulletin; None unless it is a tsunami event."""
    if str(event.get("type", "")).lower() != "tsunami":
        return None
    magnitude = _optional_float(event.get("magnitude"))
    depth = _optional_float(event.get("depth"))
    return TsunamiBulletin(
        bulletin_id=f"ptwc-{event['id']}",
        event_id=str(event["id"]),
        source="ptwc",
        alert_type=classify_ptwc(magnitude, depth),
        issued_at=(
            _parse_time(event.get("issued") or event.get("time"))
            or datetime.now(timezone.utc)
        ),
        location=event.get("location") or "Pacific Region",
        estimated_wave_height_m=_optional_float(event.get("estimatedHeight")),
        affected_zones=list(event.get("regions") or []),
        latitude=_optional_float(event.get("latitude")),
        longitude=_optional_float(event.get("longitude")),
        source_earthquake_id=event.get("sourceEarthquake"),
    )


def _parse_each(source: str, items: List[Any], parse) -> List[TsunamiBulletin]:
    bulletins: List[TsunamiBulletin] = []
    for item in items:
        try:
            bulletin = parse(item)
        except _BULLETIN_ERRORS as exc:
            logger.warning("Failed to parse %s bulletin: %s", source, exc, extra={"source": source})
            continue
        if bulletin is not None:
            bulletins.append(bulletin)
    return bulletins


def parse_noaa_features(features: List[Dict[str, Any]]) -> List[TsunamiBulletin]:
    return _parse_each("noaa", features, parse_noaa_feature)


def parse_ptwc_events(events: List[Dict[str, Any]]) -> List[TsunamiBulletin]:
    return _parse_each("ptwc", events, parse_ptwc_event)


def parse_usgs_feature(feature: Dict[str, Any]) -> EarthquakeEvent:
    """
    One USGS GeoJSON feature → EarthquakeEvent.

        {"id": "us7000m...",
         "properties": {"mag": 7.4, "place": "...", "time": 1708617600000, "tsunami": 1},
         "geometry": {"coordinates": [lon, lat, depth_km]}}
    """
    props = feature["properties"]
    coords = feature["geometry"]["coordinates"]
    lon, lat = coords[0], coords[1]
    depth_km = float(coords[2]) if len(coords) > 2 and coords[2] is not None else 0.0

    return EarthquakeEvent(
        event_id=str(feature["id"]),
        epicenter_lat=float(lat),
        epicenter_lon=float(lon),
        magnitude=float(props.get("mag") or 0.0),
        depth_km=max(0.0, depth_km),
        fault_type=FaultType.THRUST,
        occurred_at=_parse_time(props.get("time")) or datetime.now(timezone.utc),
        place=str(props.get("place") or ""),
        source="usgs",
        tsunami_confirmed=bool(props.get("tsunami")),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════════

class HazardFeedClient:
    """
    Async client for the three hazard sources.

    Usage:
        feeds = HazardFeedClient()
        bulletins = await feeds.fetch_noaa_bulletins()
        await feeds.close()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or get_settings()
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self._config.FEED_TIMEOUT_SECONDS,
                headers={"User-Agent": self._config.FEED_USER_AGENT},
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _get_json(self, source: str, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("%s feed returned HTTP %d", source, exc.response.status_code)
            raise FetchFailed(source, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("%s feed request failed: %s", source, exc)
            raise FetchFailed(source, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            logger.error("%s feed returned invalid JSON: %s", source, exc)
            raise FetchFailed(source, "invalid JSON") from exc

    async def fetch_noaa_bulletins(self) -> List[TsunamiBulletin]:
        data = await self._get_json("noaa", self._config.NOAA_ALERTS_URL, {"event": "Tsunami"})
        try:
            return parse_noaa_features(data.get("features") or [])
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise FetchFailed("noaa", f"unexpected payload: {exc}") from exc

    async def fetch_ptwc_bulletins(self) -> List[TsunamiBulletin]:
        data = await self._get_json("ptwc", self._config.PTWC_EVENTS_URL)
        try:
            return parse_ptwc_events(data.get("events") or [])
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise FetchFailed("ptwc", f"unexpected payload: {exc}") from exc

    async def fetch_earthquakes(
        self,
        min_magnitude: float,
        lookback_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> List[EarthquakeEvent]:
        """Earthquakes of at least ``min_magnitude`` within the lookback window."""
        hours = lookback_hours if lookback_hours is not None else self._config.EARTHQUAKE_LOOKBACK_HOURS
        start = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        params = {
            "format": "geojson",
            "starttime": start.strftime("%Y-%m-%dT%H:%M:%S"),
            "minmagnitude": min_magnitude,
            "orderby": "time",
        }
        data = await self._get_json("usgs", self._config.USGS_EARTHQUAKE_URL, params)

        events: List[EarthquakeEvent] = []
        try:
            features = data.get("features") or []
        except AttributeError as exc:
            raise FetchFailed("usgs", "unexpected payload") from exc
        for feature in features:
            try:
                events.append(parse_usgs_feature(feature))
            except (KeyError, TypeError, ValueError, IndexError) as exc:
                logger.warning("Failed to parse USGS feature: %s", exc)
        return events
