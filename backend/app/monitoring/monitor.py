"""
monitor.py — Recurring tsunami monitoring loop.

Each tick:
    1. Fetch NOAA + PTWC bulletins and recent USGS earthquakes concurrently
       (a failing source is logged and skipped for this tick)
    2. Store new bulletins; skip bulletins already stored
    3. Link bulletins to earthquakes (explicit id, else nearest quake
       within 3 h before the bulletin); linked quakes are confirmed
    4. For each unprocessed earthquake with tsunami potential, assess the
       fleet, create an Alert per qualifying vessel and start escalation;
       the quake is marked processed only after that completes
    5. Return a TickReport; nothing raised inside a tick escapes it

═══════════════════════════════════════════════════════════════════════════
SCHEDULING
═══════════════════════════════════════════════════════════════════════════

    start()  ──► loop: tick ─► sleep(interval) ─► tick ─► ...
    stop()   ──► loop cancelled; an in-flight tick is allowed to finish

    settings change:
        checkInterval changed   → loop restarted; the running tick keeps
                                  its captured snapshot, the new interval
                                  applies from the next tick
        tsunamiMonitoring flag  → read at the start of each tick, no restart

Ticks are serialised with an asyncio.Lock, so a manual ``run_tick`` and
the scheduled tick never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import FetchFailed, NoPolicyMatched
from backend.app.escalation.models import Alert, AlertType, InitiateResult
from backend.app.escalation.orchestrator import EscalationOrchestrator
from backend.app.geophysics.calculator import distance
from backend.app.geophysics.ocean import OceanPredicate, is_near_ocean
from backend.app.monitoring.feeds import HazardFeedClient, TsunamiBulletin
from backend.app.monitoring.ledger import ProcessedEventLedger
from backend.app.settings_bus.bus import SettingsBus, has_changed, monitoring_settings_changed
from backend.app.settings_bus.schema import SettingsSnapshot
from backend.app.stores.memory import AlertStore, VesselPositionStore
from backend.app.threat.assessment import assess_fleet, qualifies_for_notification
from backend.app.threat.models import (
    EarthquakeEvent,
    ThreatAssessment,
    ThreatSeverity,
    VesselPosition,
)

logger = logging.getLogger(__name__)

CORRELATION_WINDOW = timedelta(hours=3)


# ═══════════════════════════════════════════════════════════════════════════
# Event pipeline (shared with the simulation entry point)
# ═══════════════════════════════════════════════════════════════════════════

def has_tsunami_potential(
    event: EarthquakeEvent,
    min_magnitude: float,
    max_depth_km: float,
    ocean_predicate: OceanPredicate = is_near_ocean,
) -> bool:
    """Strong, shallow and near the ocean; or confirmed by a bulletin."""
    if event.tsunami_confirmed:
        return True
    return (
        event.magnitude >= min_magnitude
        and event.depth_km <= max_depth_km
        and ocean_predicate(event.epicenter_lat, event.epicenter_lon)
    )


def correlate_bulletins(
    bulletins: Iterable[TsunamiBulletin],
    earthquakes: List[EarthquakeEvent],
) -> Dict[str, TsunamiBulletin]:
    """
    Map earthquake id → bulletin that confirms it.

    A bulletin naming ``source_earthquake_id`` links to that quake.
    Otherwise the candidates are quakes within 3 h before the bulletin;
    the nearest one wins (by distance when the bulletin has coordinates,
    else by time).
    """
    by_id = {quake.event_id: quake for quake in earthquakes}
    linked: Dict[str, TsunamiBulletin] = {}

    for bulletin in bulletins:
        if bulletin.source_earthquake_id in by_id:
            linked[bulletin.source_earthquake_id] = bulletin
            continue

        candidates = [
            quake for quake in earthquakes
            if timedelta(0) <= bulletin.issued_at - quake.occurred_at <= CORRELATION_WINDOW
        ]
        if not candidates:
            continue
        if bulletin.latitude is not None and bulletin.longitude is not None:
            nearest = min(candidates, key=lambda q: distance(
                bulletin.latitude, bulletin.longitude, q.epicenter_lat, q.epicenter_lon,
            ))
        else:
            nearest = min(candidates, key=lambda q: bulletin.issued_at - q.occurred_at)
        linked.setdefault(nearest.event_id, bulletin)

    return linked


def alert_message(threat: ThreatAssessment) -> str:
    return (
        f"Tsunami alert: Wave height {threat.wave_height_m:.1f}m expected in "
        f"{threat.eta_minutes:.0f} minutes"
    )


@dataclass
class EventOutcome:
    """Result of running one earthquake through assessment and escalation."""
    event: EarthquakeEvent
    threats: List[ThreatAssessment] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    results: Dict[str, InitiateResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def notifications_sent(self) -> int:
        return sum(r.notifications_sent for r in self.results.values())


async def process_event(
    event: EarthquakeEvent,
    positions: Iterable[Optional[VesselPosition]],
    *,
    alerts: AlertStore,
    orchestrator: EscalationOrchestrator,
    max_range_km: float,
    min_severity: ThreatSeverity,
    min_confidence: float,
    dry_run: bool = False,
) -> EventOutcome:
    """Assess the fleet for ``event`` and escalate every qualifying threat."""
    outcome = EventOutcome(event=event)
    outcome.threats = assess_fleet(event, positions, max_range_km)

    for threat in outcome.threats:
        if not qualifies_for_notification(threat, min_severity, min_confidence):
            continue
        try:
            if alerts.find(threat.vessel_id, event.event_id) is not None:
                continue
            alert = alerts.save(Alert(
                vessel_id=threat.vessel_id,
                vessel_name=threat.vessel_name,
                type=AlertType.TSUNAMI,
                severity=threat.severity,
                message=alert_message(threat),
                event_id=event.event_id,
                threat=threat,
            ))
            outcome.alerts.append(alert)
            outcome.results[alert.alert_id] = await orchestrator.initiate(alert, dry_run=dry_run)
        except NoPolicyMatched as exc:
            outcome.errors.append(exc.message)
        except Exception as exc:
            logger.exception(
                "Escalation for vessel %s failed", threat.vessel_id,
                extra={"vessel_id": threat.vessel_id, "event_id": event.event_id},
            )
            outcome.errors.append(f"{threat.vessel_id}: {exc}")

    logger.info(
        "Event %s (M%.1f): %d vessel(s) in range, %d alert(s), %d notification(s)",
        event.event_id, event.magnitude, len(outcome.threats),
        len(outcome.alerts), outcome.notifications_sent,
        extra={"event_id": event.event_id},
    )
    return outcome


# ═══════════════════════════════════════════════════════════════════════════
# Tick report
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class TickReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    skipped: bool = False
    check_interval: int = 0
    bulletins_fetched: int = 0
    new_bulletins: int = 0
    earthquakes_fetched: int = 0
    tsunami_events: int = 0
    threats_assessed: int = 0
    alerts_created: int = 0
    notifications_sent: int = 0
    failed_sources: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "checkInterval": self.check_interval,
            "bulletinsFetched": self.bulletins_fetched,
            "newBulletins": self.new_bulletins,
            "earthquakesFetched": self.earthquakes_fetched,
            "tsunamiEvents": self.tsunami_events,
            "threatsAssessed": self.threats_assessed,
            "alertsCreated": self.alerts_created,
            "notificationsSent": self.notifications_sent,
            "failedSources": self.failed_sources,
            "errors": self.errors,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Monitor
# ═══════════════════════════════════════════════════════════════════════════

class TsunamiMonitor:
    """
    Recurring monitoring loop, constructed once at process start.

    Parameters
    ----------
    feeds : HazardFeedClient
    ledger : ProcessedEventLedger
    vessels : VesselPositionStore
    alerts : AlertStore
    orchestrator : EscalationOrchestrator
    settings_bus : SettingsBus
        Source of the current snapshot (interval, flags, thresholds).
    ocean_predicate : callable
        ``(lat, lon) → bool`` coastal/ocean proximity test.
    """

    def __init__(
        self,
        *,
        feeds: HazardFeedClient,
        ledger: ProcessedEventLedger,
        vessels: VesselPositionStore,
        alerts: AlertStore,
        orchestrator: EscalationOrchestrator,
        settings_bus: SettingsBus,
        ocean_predicate: OceanPredicate = is_near_ocean,
        config: Optional[Settings] = None,
    ):
        self._feeds = feeds
        self._ledger = ledger
        self._vessels = vessels
        self._alerts = alerts
        self._orchestrator = orchestrator
        self._bus = settings_bus
        self._ocean_predicate = ocean_predicate
        self._config = config or get_settings()

        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()
        self._interval = self._snapshot_interval(settings_bus.current)
        self.last_report: Optional[TickReport] = None
        self.tick_count = 0

    # ── lifecycle ──

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def interval_seconds(self) -> int:
        return self._interval

    def _snapshot_interval(self, snapshot: Optional[SettingsSnapshot]) -> int:
        if snapshot is None:
            return self._config.MONITOR_CHECK_INTERVAL_SECONDS
        return snapshot.monitoring.check_interval

    async def start(self) -> bool:
        """Start the loop; returns False (and logs) if already running."""
        if self.running:
            logger.info("Tsunami monitor already running")
            return False
        self._loop_task = asyncio.create_task(self._loop(tick_first=True), name="tsunami-monitor")
        logger.info("Tsunami monitor started (every %ds)", self._interval)
        return True

    async def stop(self) -> bool:
        """Stop the loop; returns False (and logs) if already stopped."""
        if not self.running:
            logger.info("Tsunami monitor already stopped")
            return False
        await self._cancel_loop()
        if self._tick_task is not None and not self._tick_task.done():
            await asyncio.gather(self._tick_task, return_exceptions=True)
        logger.info("Tsunami monitor stopped")
        return True

    async def _cancel_loop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _restart(self) -> None:
        await self._cancel_loop()
        self._loop_task = asyncio.create_task(self._loop(tick_first=False), name="tsunami-monitor")
        logger.info("Tsunami monitor rescheduled (every %ds)", self._interval)

    async def _loop(self, tick_first: bool) -> None:
        if not tick_first:
            # let an in-flight tick finish before the new schedule starts
            async with self._tick_lock:
                pass
            await asyncio.sleep(self._interval)
        while True:
            interval = self._interval
            self._tick_task = asyncio.create_task(self.run_tick())
            # shield: cancelling the loop must not cancel the tick
            await asyncio.shield(self._tick_task)
            await asyncio.sleep(interval)

    async def on_settings_change(
        self,
        snapshot: SettingsSnapshot,
        previous: Optional[SettingsSnapshot] = None,
    ) -> None:
        """Settings-bus handler."""
        if not monitoring_settings_changed(snapshot, previous):
            return

        new_interval = snapshot.monitoring.check_interval
        if has_changed("monitoring.check_interval", snapshot, previous) and new_interval != self._interval:
            logger.info("Check interval %ds → %ds", self._interval, new_interval)
            self._interval = new_interval
            if self.running:
                await self._restart()

        if previous is not None and has_changed("monitoring.tsunami_monitoring", snapshot, previous):
            logger.info(
                "Tsunami monitoring %s",
                "enabled" if snapshot.monitoring.tsunami_monitoring else "disabled",
            )

    def status(self) -> Dict[str, Any]:
        snapshot = self._bus.current
        return {
            "running": self.running,
            "enabled": bool(snapshot is None or snapshot.monitoring.tsunami_monitoring),
            "checkInterval": self._interval,
            "tickCount": self.tick_count,
            "tickInProgress": self._tick_lock.locked(),
            "lastTick": self.last_report.to_dict() if self.last_report else None,
        }

    # ── tick ──

    async def run_tick(self) -> TickReport:
        """Run one tick now (waits for an in-flight tick first)."""
        async with self._tick_lock:
            snapshot = self._bus.current
            report = TickReport(check_interval=self._interval)
            try:
                if snapshot is not None and not snapshot.monitoring.tsunami_monitoring:
                    report.skipped = True
                    logger.debug("Tsunami monitoring disabled; tick skipped")
                else:
                    await self._tick(snapshot, report)
            except Exception as exc:
                logger.exception("Monitoring tick failed")
                report.errors.append(str(exc))
            report.finished_at = datetime.now(timezone.utc)
            self.tick_count += 1
            self.last_report = report
            return report

    async def _fetch(self, source: str, coro: Any, report: TickReport) -> list:
        try:
            return await coro
        except FetchFailed as exc:
            logger.warning("Skipping %s this tick: %s", source, exc.message)
        except Exception as exc:
            logger.exception("Unexpected error fetching %s", source)
            report.errors.append(f"{source}: {exc}")
        report.failed_sources.append(source)
        return []

    async def _tick(self, snapshot: Optional[SettingsSnapshot], report: TickReport) -> None:
        started = datetime.now(timezone.utc)
        check_quakes = snapshot is None or snapshot.monitoring.earthquake_monitoring
        min_magnitude = (
            snapshot.monitoring.magnitude_threshold if snapshot is not None
            else self._config.TSUNAMI_MIN_MAGNITUDE
        )

        async def _no_quakes() -> List[EarthquakeEvent]:
            return []

        noaa, ptwc, quakes = await asyncio.gather(
            self._fetch("noaa", self._feeds.fetch_noaa_bulletins(), report),
            self._fetch("ptwc", self._feeds.fetch_ptwc_bulletins(), report),
            self._fetch(
                "usgs",
                self._feeds.fetch_earthquakes(min_magnitude) if check_quakes else _no_quakes(),
                report,
            ),
        )
        bulletins = list(noaa) + list(ptwc)
        report.bulletins_fetched = len(bulletins)
        report.earthquakes_fetched = len(quakes)

        new_bulletins = []
        for bulletin in bulletins:
            if self._alerts.has_bulletin(bulletin.bulletin_id):
                continue
            self._alerts.save_bulletin(bulletin.bulletin_id, bulletin.to_dict())
            new_bulletins.append(bulletin)
            logger.info(
                "New %s tsunami %s: %s",
                bulletin.source.upper(), bulletin.alert_type.value, bulletin.location,
            )
        report.new_bulletins = len(new_bulletins)

        confirmed = correlate_bulletins(new_bulletins, quakes)
        positions = self._vessels.fleet_positions(at=started)

        for quake in quakes:
            try:
                if self._ledger.seen("earthquake", quake.event_id):
                    continue
                event = replace(quake, tsunami_confirmed=True) if quake.event_id in confirmed else quake
                if not has_tsunami_potential(
                    event,
                    self._config.TSUNAMI_MIN_MAGNITUDE,
                    self._config.TSUNAMI_MAX_DEPTH_KM,
                    self._ocean_predicate,
                ):
                    continue

                report.tsunami_events += 1
                outcome = await process_event(
                    event,
                    positions,
                    alerts=self._alerts,
                    orchestrator=self._orchestrator,
                    max_range_km=self._config.MAX_THREAT_RANGE_KM,
                    min_severity=ThreatSeverity(self._config.NOTIFY_MIN_SEVERITY),
                    min_confidence=self._config.NOTIFY_MIN_CONFIDENCE,
                )
                report.threats_assessed += len(outcome.threats)
                report.alerts_created += len(outcome.alerts)
                report.notifications_sent += outcome.notifications_sent
                report.errors.extend(outcome.errors)
                # rejected or failed quakes stay unmarked so a later bulletin can confirm them
                self._ledger.mark("earthquake", quake.event_id)
            except Exception as exc:
                logger.exception(
                    "Processing earthquake %s failed", quake.event_id,
                    extra={"event_id": quake.event_id},
                )
                report.errors.append(f"{quake.event_id}: {exc}")

        logger.info(
            "Tick: %d bulletin(s) (%d new), %d quake(s), %d tsunami event(s), %d alert(s)",
            report.bulletins_fetched, report.new_bulletins, report.earthquakes_fetched,
            report.tsunami_events, report.alerts_created,
        )
