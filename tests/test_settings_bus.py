"""
test_settings_bus.py — Tests for runtime settings validation and
propagation.

Covers:
    • Snapshot schema (camelCase wire format, bounds, unknown keys)
    • SettingsService.save (partial merge, versioning, rejection)
    • SettingsBus (ordering, previous snapshot, failing subscribers,
      sync and async handlers)
    • Diff helpers
    • Log-level subscriber

Run with:
    pytest tests/test_settings_bus.py -v
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from pydantic import ValidationError

from backend.app.core.errors import SettingsValidationFailed
from backend.app.core.logging_config import apply_snapshot_log_level
from backend.app.settings_bus.bus import (
    SettingsBus,
    has_changed,
    monitoring_settings_changed,
    notification_settings_changed,
)
from backend.app.settings_bus.schema import MonitoringSettings, SettingsSnapshot
from backend.app.settings_bus.service import SettingsService, default_snapshot
from backend.app.stores.memory import SettingsStore


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

def _make_service():
    bus = SettingsBus(SettingsSnapshot(version=1))
    service = SettingsService(SettingsStore(), bus)
    return service, bus


# ═══════════════════════════════════════════════════════════════════════════
# Schema
# ═══════════════════════════════════════════════════════════════════════════

class TestSnapshotSchema:
    """Test the settings document."""

    def test_defaults(self):
        snap = SettingsSnapshot()
        assert snap.monitoring.check_interval == 60
        assert snap.monitoring.tsunami_monitoring is True
        assert snap.notifications.enabled_channels() == ["sms", "whatsapp", "email", "voice"]
        assert snap.alert_levels.critical.magnitude == 7.0

    def test_camel_case_dump(self):
        d = SettingsSnapshot().model_dump(by_alias=True, mode="json")
        assert "checkInterval" in d["monitoring"]
        assert "alertLevels" in d
        assert "retentionDays" in d["system"]

    def test_parses_camel_case(self):
        snap = SettingsSnapshot.model_validate({"monitoring": {"checkInterval": 120}})
        assert snap.monitoring.check_interval == 120

    def test_interval_bounds(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(check_interval=5)
        with pytest.raises(ValidationError):
            MonitoringSettings(check_interval=7200)

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            SettingsSnapshot.model_validate({"monitoring": {"pollEvery": 10}})

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValidationError):
            SettingsSnapshot.model_validate(
                {"alertLevels": {"low": {"magnitude": 4, "channels": ["pager"]}}}
            )

    def test_frozen(self):
        snap = SettingsSnapshot()
        with pytest.raises(ValidationError):
            snap.version = 9

    def test_default_snapshot_uses_configured_interval(self):
        snap = default_snapshot()
        assert snap.version == 1
        assert snap.monitoring.check_interval == 300


# ═══════════════════════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════════════════════

class TestSettingsService:
    """Test validated saves."""

    def test_partial_update_merges(self):
        service, _ = _make_service()
        snap = asyncio.run(service.save({"monitoring": {"checkInterval": 120}}))
        assert snap.monitoring.check_interval == 120
        assert snap.monitoring.tsunami_monitoring is True
        assert snap.notifications.sms.enabled is True

    def test_version_increments(self):
        service, _ = _make_service()

        async def scenario():
            a = await service.save({"system": {"language": "ja"}})
            b = await service.save({"system": {"language": "en"}})
            return a, b

        a, b = asyncio.run(scenario())
        assert a.version == 2
        assert b.version == 3
        assert b.updated_at is not None

    def test_client_version_ignored(self):
        service, _ = _make_service()
        snap = asyncio.run(service.save({"version": 99}))
        assert snap.version == 2

    def test_invalid_update_rejected_and_state_kept(self):
        service, bus = _make_service()
        calls = []
        bus.subscribe("spy", lambda new, prev: calls.append(new.version))

        with pytest.raises(SettingsValidationFailed) as info:
            asyncio.run(service.save({"monitoring": {"checkInterval": 1}}))

        assert info.value.status_code == 422
        assert service.current().monitoring.check_interval == 60
        assert service.current().version == 1
        assert calls == []

    def test_validation_details_name_field(self):
        service, _ = _make_service()
        with pytest.raises(SettingsValidationFailed) as info:
            asyncio.run(service.save({"system": {"retentionDays": 1000}}))
        details = str(info.value.details)
        assert "retentionDays" in details

    def test_save_notifies_bus(self):
        service, bus = _make_service()
        seen = []
        bus.subscribe("spy", lambda new, prev: seen.append((new.version, prev.version)))
        asyncio.run(service.save({"monitoring": {"magnitudeThreshold": 5.5}}))
        assert seen == [(2, 1)]
        assert bus.current.monitoring.magnitude_threshold == 5.5


# ═══════════════════════════════════════════════════════════════════════════
# Bus
# ═══════════════════════════════════════════════════════════════════════════

class TestSettingsBus:
    """Test propagation semantics."""

    def test_subscribers_called_in_order_with_previous(self):
        bus = SettingsBus(SettingsSnapshot(version=1))
        order = []
        bus.subscribe("a", lambda new, prev: order.append(("a", new.version, prev.version)))
        bus.subscribe("b", lambda new, prev: order.append(("b", new.version, prev.version)))

        asyncio.run(bus.notify_change(SettingsSnapshot(version=2)))
        assert order == [("a", 2, 1), ("b", 2, 1)]

    def test_first_snapshot_has_no_previous(self):
        bus = SettingsBus()
        seen = []
        bus.subscribe("a", lambda new, prev: seen.append(prev))
        asyncio.run(bus.notify_change(SettingsSnapshot(version=1)))
        assert seen == [None]

    def test_failing_subscriber_isolated(self):
        bus = SettingsBus(SettingsSnapshot(version=1))
        seen = []

        def _broken(new, prev):
            raise RuntimeError("boom")

        bus.subscribe("broken", _broken)
        bus.subscribe("ok", lambda new, prev: seen.append(new.version))

        failed = asyncio.run(bus.notify_change(SettingsSnapshot(version=2)))
        assert failed == ["broken"]
        assert seen == [2]
        assert bus.current.version == 2

    def test_async_handler_awaited(self):
        bus = SettingsBus()
        seen = []

        async def _handler(new, prev):
            await asyncio.sleep(0)
            seen.append(new.version)

        bus.subscribe("async", _handler)
        asyncio.run(bus.notify_change(SettingsSnapshot(version=4)))
        assert seen == [4]

    def test_subscribe_replaces_same_name(self):
        bus = SettingsBus()
        seen = []
        bus.subscribe("x", lambda new, prev: seen.append("old"))
        bus.subscribe("x", lambda new, prev: seen.append("new"))
        asyncio.run(bus.notify_change(SettingsSnapshot()))
        assert seen == ["new"]
        assert bus.subscribers == ["x"]

    def test_unsubscribe(self):
        bus = SettingsBus()
        bus.subscribe("x", lambda new, prev: None)
        assert bus.unsubscribe("x") is True
        assert bus.unsubscribe("x") is False

    def test_seed_does_not_notify(self):
        bus = SettingsBus()
        seen = []
        bus.subscribe("x", lambda new, prev: seen.append(new))
        bus.seed(SettingsSnapshot(version=7))
        assert bus.current.version == 7
        assert seen == []


class TestDiffHelpers:
    """Test change detection."""

    def test_changed_path(self):
        a = SettingsSnapshot.model_validate({"monitoring": {"checkInterval": 60}})
        b = SettingsSnapshot.model_validate({"monitoring": {"checkInterval": 90}})
        assert has_changed("monitoring.check_interval", b, a)
        assert monitoring_settings_changed(b, a)
        assert not notification_settings_changed(b, a)

    def test_no_previous_means_changed(self):
        assert has_changed("system", SettingsSnapshot(), None)


class TestLogLevelSubscriber:
    """Test ``system.logLevel`` propagation to the root logger."""

    def test_applies_level(self):
        root = logging.getLogger()
        original = root.level
        try:
            snap = SettingsSnapshot.model_validate({"system": {"logLevel": "debug"}})
            apply_snapshot_log_level(snap)
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(original)

    def test_unchanged_level_left_alone(self):
        root = logging.getLogger()
        original = root.level
        try:
            root.setLevel(logging.ERROR)
            snap = SettingsSnapshot()
            apply_snapshot_log_level(snap, SettingsSnapshot())
            assert root.level == logging.ERROR
        finally:
            root.setLevel(original)
