"""
container.py — Construction of the long-lived service objects.

Everything the API needs is built once in the application lifespan and
passed by reference; nothing here is a module-level singleton.

    stores ─┬─► EscalationOrchestrator ─┐
            │                            ├─► TsunamiMonitor
            ├─► SettingsService ─► bus ──┘
            └─► simulation (uses the same stores + orchestrator)

Bus subscribers registered at build time:
    "monitor"        → TsunamiMonitor.on_settings_change
    "escalation"     → EscalationOrchestrator.apply_settings
    "logging"        → apply_snapshot_log_level
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from backend.app.core.config import Settings, get_settings
from backend.app.core.logging_config import apply_snapshot_log_level
from backend.app.escalation.models import Channel
from backend.app.escalation.orchestrator import ChannelAdapter, EscalationOrchestrator
from backend.app.escalation.policy import default_policies
from backend.app.escalation.timers import TimerFactory
from backend.app.geophysics.ocean import OceanPredicate, is_near_ocean
from backend.app.monitoring.feeds import HazardFeedClient
from backend.app.monitoring.ledger import ProcessedEventLedger
from backend.app.monitoring.monitor import TsunamiMonitor
from backend.app.settings_bus.bus import SettingsBus
from backend.app.settings_bus.service import SettingsService, default_snapshot
from backend.app.stores.memory import (
    AlertStore,
    ContactStore,
    PolicyStore,
    SettingsStore,
    VesselPositionStore,
)
from backend.app.stores.seed import load_fleet

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    config: Settings
    vessels: VesselPositionStore
    contacts: ContactStore
    policies: PolicyStore
    alerts: AlertStore
    settings_bus: SettingsBus
    settings_service: SettingsService
    orchestrator: EscalationOrchestrator
    feeds: HazardFeedClient
    monitor: TsunamiMonitor

    async def startup(self) -> None:
        if self.config.MONITOR_AUTOSTART:
            await self.monitor.start()

    async def shutdown(self) -> None:
        await self.monitor.stop()
        await self.orchestrator.shutdown()
        await self.feeds.close()


def build_container(
    config: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    adapters: Optional[Dict[Channel, ChannelAdapter]] = None,
    timer_factory: Optional[TimerFactory] = None,
    ocean_predicate: OceanPredicate = is_near_ocean,
) -> ServiceContainer:
    config = config or get_settings()

    vessels = VesselPositionStore()
    contacts = ContactStore()
    policies = PolicyStore()
    if config.FLEET_SEED_FILE:
        load_fleet(config.FLEET_SEED_FILE, vessels=vessels, contacts=contacts, policies=policies)
    if not policies.all():
        for policy in default_policies():
            policies.add(policy)

    alerts = AlertStore()
    bus = SettingsBus(default_snapshot(config))
    settings_service = SettingsService(SettingsStore(), bus, config)

    orchestrator = EscalationOrchestrator(
        policies=policies,
        contacts=contacts,
        alerts=alerts,
        adapters=adapters,
        timer_factory=timer_factory,
        config=config,
    )
    feeds = HazardFeedClient(config, http_client=http_client)
    monitor = TsunamiMonitor(
        feeds=feeds,
        ledger=ProcessedEventLedger(),
        vessels=vessels,
        alerts=alerts,
        orchestrator=orchestrator,
        settings_bus=bus,
        ocean_predicate=ocean_predicate,
        config=config,
    )

    bus.subscribe("monitor", monitor.on_settings_change)
    bus.subscribe("escalation", orchestrator.apply_settings)
    bus.subscribe("logging", apply_snapshot_log_level)
    orchestrator.apply_settings(bus.current)

    logger.info(
        "Services built: %d vessel(s), %d polic(ies)",
        len(vessels.vessel_ids()), len(policies.all()),
    )
    return ServiceContainer(
        config=config,
        vessels=vessels,
        contacts=contacts,
        policies=policies,
        alerts=alerts,
        settings_bus=bus,
        settings_service=settings_service,
        orchestrator=orchestrator,
        feeds=feeds,
        monitor=monitor,
    )
