"""
simulation.py — Manual tsunami scenario through the full pipeline.

Used for rehearsals without a live hazard feed:

    scenario ─► EarthquakeEvent ─► assess fleet ─► Alerts ─► escalation
                                                         (dry run unless
                                                          send_notifications)

The response carries the affected vessels, the created alerts with their
``initiate`` results, a summary and a structured log of every stage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.app.core.config import Settings, get_settings
from backend.app.escalation.orchestrator import EscalationOrchestrator
from backend.app.geophysics.calculator import initial_displacement, validate_coordinate
from backend.app.monitoring.monitor import process_event
from backend.app.stores.memory import AlertStore, VesselPositionStore
from backend.app.threat.models import EarthquakeEvent, FaultType, ThreatSeverity

logger = logging.getLogger(__name__)


@dataclass
class TsunamiScenario:
    epicenter_lat: float
    epicenter_lon: float
    magnitude: float
    depth_km: float = 30.0
    fault_type: FaultType = FaultType.THRUST
    fault_strike_deg: Optional[float] = None
    fault_length_km: Optional[float] = None
    fault_width_km: Optional[float] = None
    send_notifications: bool = False
    vessel_ids: Optional[List[str]] = None


@dataclass
class _SimulationLog:
    entries: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, stage: str, message: str, level: int = logging.INFO, **data: Any) -> None:
        logger.log(level, "[SIM] %s: %s", stage, message)
        self.entries.append({
            "time": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level).lower(),
            "stage": stage,
            "message": message,
            **({"data": data} if data else {}),
        })


async def simulate_tsunami(
    scenario: TsunamiScenario,
    *,
    vessels: VesselPositionStore,
    alerts: AlertStore,
    orchestrator: EscalationOrchestrator,
    config: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Run a manual scenario and return the structured result.

    Raises
    ------
    InvalidCoordinate, InvalidParameter
        Malformed scenario input; surfaced to the caller.
    """
    config = config or get_settings()
    validate_coordinate(scenario.epicenter_lat, scenario.epicenter_lon)
    dry_run = not scenario.send_notifications
    log = _SimulationLog()

    event = EarthquakeEvent(
        epicenter_lat=scenario.epicenter_lat,
        epicenter_lon=scenario.epicenter_lon,
        magnitude=scenario.magnitude,
        depth_km=scenario.depth_km,
        fault_type=FaultType(scenario.fault_type),
        fault_strike_deg=scenario.fault_strike_deg,
        fault_length_km=scenario.fault_length_km,
        fault_width_km=scenario.fault_width_km,
        source="simulation",
        place="Simulated epicenter",
    )
    source_m = initial_displacement(
        event.magnitude, event.depth_km, event.fault_type,
        event.fault_length_km, event.fault_width_km,
    )
    log.add(
        "event",
        f"M{event.magnitude} {event.fault_type.value} at "
        f"({event.epicenter_lat}, {event.epicenter_lon}), depth {event.depth_km} km, "
        f"source displacement {source_m:.2f} m",
        eventId=event.event_id,
    )

    vessel_ids = scenario.vessel_ids or vessels.vessel_ids()
    positions = [vessels.latest(vessel_id) for vessel_id in vessel_ids]
    with_fix = sum(1 for p in positions if p is not None)
    log.add("fleet", f"{len(vessel_ids)} vessel(s), {with_fix} with a known position")

    outcome = await process_event(
        event,
        positions,
        alerts=alerts,
        orchestrator=orchestrator,
        max_range_km=config.MAX_THREAT_RANGE_KM,
        min_severity=ThreatSeverity(config.NOTIFY_MIN_SEVERITY),
        min_confidence=config.NOTIFY_MIN_CONFIDENCE,
        dry_run=dry_run,
    )

    for threat in sorted(outcome.threats, key=lambda t: (-t.severity.rank, t.distance_km)):
        log.add(
            "assessment",
            f"{threat.vessel_name or threat.vessel_id}: {threat.distance_km:.0f} km, "
            f"{threat.wave_height_m:.2f} m, ETA {threat.eta_minutes:.0f} min → {threat.severity.value}",
        )
    for alert in outcome.alerts:
        result = outcome.results.get(alert.alert_id)
        if result is None:
            log.add("escalation", f"Alert {alert.alert_id} not escalated", logging.WARNING)
        else:
            log.add(
                "escalation",
                f"Alert {alert.alert_id}: {result.notifications_sent} notification(s)"
                + (" (dry run)" if dry_run else ""),
            )
    for error in outcome.errors:
        log.add("error", error, logging.WARNING)

    speeds = [t.tsunami_speed_kmh for t in outcome.threats]
    return {
        "success": True,
        "dryRun": dry_run,
        "event": event.to_dict(),
        "epicenter": {"lat": event.epicenter_lat, "lon": event.epicenter_lon},
        "magnitude": event.magnitude,
        "depth": event.depth_km,
        "faultType": event.fault_type.value,
        "tsunamiSpeed": round(sum(speeds) / len(speeds), 1) if speeds else None,
        "affectedVessels": [t.to_dict() for t in outcome.threats],
        "alerts": [
            {
                **alert.to_dict(),
                "escalation": (
                    outcome.results[alert.alert_id].to_dict()
                    if alert.alert_id in outcome.results else None
                ),
            }
            for alert in outcome.alerts
        ],
        "summary": {
            "totalVessels": len(vessel_ids),
            "affectedVessels": len(outcome.threats),
            "alertsCreated": len(outcome.alerts),
            "notificationsSent": outcome.notifications_sent,
        },
        "errors": outcome.errors,
        "logs": log.entries,
    }
