"""
schema.py — Runtime-mutable settings snapshot and its validation rules.

Wire format is camelCase (``checkInterval``, ``alertLevels``); Python
attributes are snake_case. A snapshot is replaced wholesale on each save
and carries a monotonically increasing ``version``.

    monitoring      earthquakeMonitoring, tsunamiMonitoring,
                    checkInterval [10, 3600] s, magnitudeThreshold [0, 10]
    notifications   sms / whatsapp / email / voice → {enabled, priority [1, 5]}
    alertLevels     low / medium / high / critical → {magnitude, channels[]}
    system          timezone, language, logLevel, retentionDays [7, 365]
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ChannelName = Literal["sms", "email", "whatsapp", "voice"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class MonitoringSettings(_CamelModel):
    earthquake_monitoring: bool = True
    tsunami_monitoring: bool = True
    check_interval: int = Field(default=60, ge=10, le=3600)
    magnitude_threshold: float = Field(default=4.0, ge=0, le=10)


class ChannelSettings(_CamelModel):
    enabled: bool = True
    priority: int = Field(default=1, ge=1, le=5)


class NotificationSettings(_CamelModel):
    sms: ChannelSettings = ChannelSettings(enabled=True, priority=1)
    whatsapp: ChannelSettings = ChannelSettings(enabled=True, priority=2)
    email: ChannelSettings = ChannelSettings(enabled=True, priority=3)
    voice: ChannelSettings = ChannelSettings(enabled=True, priority=4)

    def enabled_channels(self) -> List[str]:
        return [
            name for name in ("sms", "whatsapp", "email", "voice")
            if getattr(self, name).enabled
        ]


class AlertLevelSettings(_CamelModel):
    magnitude: float = Field(ge=0, le=10)
    channels: List[ChannelName] = Field(default_factory=list)


class AlertLevels(_CamelModel):
    low: AlertLevelSettings = AlertLevelSettings(magnitude=4.0, channels=["sms", "email"])
    medium: AlertLevelSettings = AlertLevelSettings(
        magnitude=5.0, channels=["sms", "email", "whatsapp"],
    )
    high: AlertLevelSettings = AlertLevelSettings(
        magnitude=6.0, channels=["sms", "email", "whatsapp", "voice"],
    )
    critical: AlertLevelSettings = AlertLevelSettings(
        magnitude=7.0, channels=["sms", "email", "whatsapp", "voice"],
    )


class SystemSettings(_CamelModel):
    timezone: str = "UTC"
    language: str = "en"
    log_level: Literal["error", "warn", "info", "debug"] = "info"
    retention_days: int = Field(default=90, ge=7, le=365)


class SettingsSnapshot(_CamelModel):
    """One immutable, versioned settings document."""
    version: int = Field(default=0, ge=0)
    monitoring: MonitoringSettings = MonitoringSettings()
    notifications: NotificationSettings = NotificationSettings()
    alert_levels: AlertLevels = AlertLevels()
    system: SystemSettings = SystemSettings()
    updated_at: Optional[datetime] = None
