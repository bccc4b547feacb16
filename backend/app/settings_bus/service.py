"""
service.py — Validated settings saves feeding the propagation bus.

Save flow:

    raw (camelCase, partial allowed)
        │  deep-merge onto the current snapshot
        ▼
    SettingsSnapshot.model_validate ──✗──► SettingsValidationFailed
        │                                   (current snapshot untouched)
        ▼
    version + 1, updated_at = now
        │
        ├──► SettingsStore.save
        └──► SettingsBus.notify_change
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import SettingsValidationFailed
from backend.app.settings_bus.bus import SettingsBus
from backend.app.settings_bus.schema import MonitoringSettings, SettingsSnapshot
from backend.app.stores.memory import SettingsStore

logger = logging.getLogger(__name__)


def default_snapshot(config: Optional[Settings] = None) -> SettingsSnapshot:
    """Boot snapshot: schema defaults with the configured poll interval."""
    config = config or get_settings()
    return SettingsSnapshot(
        version=1,
        monitoring=MonitoringSettings(check_interval=config.MONITOR_CHECK_INTERVAL_SECONDS),
        updated_at=datetime.now(timezone.utc),
    )


def _deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SettingsService:
    def __init__(self, store: SettingsStore, bus: SettingsBus, config: Optional[Settings] = None):
        self._store = store
        self._bus = bus
        if store.load() is None:
            store.save(bus.current or default_snapshot(config))
        if bus.current is None:
            bus.seed(store.load())

    def current(self) -> SettingsSnapshot:
        return self._store.load()

    async def save(self, raw: Dict[str, Any]) -> SettingsSnapshot:
        """Validate, version, store and broadcast a settings update."""
        current = self.current()
        payload = _deep_merge(current.model_dump(by_alias=True, mode="json"), raw or {})
        payload.pop("version", None)
        payload.pop("updatedAt", None)

        try:
            candidate = SettingsSnapshot.model_validate(payload)
        except ValidationError as exc:
            errors = json.loads(exc.json(include_url=False))
            logger.warning(
                "Settings update rejected (%d error(s)); keeping v%d",
                len(errors), current.version,
            )
            raise SettingsValidationFailed(errors) from exc

        snapshot = candidate.model_copy(update={
            "version": current.version + 1,
            "updated_at": datetime.now(timezone.utc),
        })
        self._store.save(snapshot)
        logger.info("Settings saved as v%d", snapshot.version)
        await self._bus.notify_change(snapshot)
        return snapshot
