"""
Environment configuration — single source of truth for process settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Runtime-tunable values (poll interval, magnitude threshold, channel
switches) live in the SettingsSnapshot handled by the settings bus;
the values here are the boot-time defaults those snapshots start from.

Usage:
    from backend.app.core.config import settings
    print(settings.MONITOR_CHECK_INTERVAL_SECONDS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Maritime Tsunami Alerts"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOG_FORMAT: str = "auto"  # auto (json in production) | json | pretty

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── External hazard feeds ──
    NOAA_ALERTS_URL: str = "https://api.weather.gov/alerts"
    PTWC_EVENTS_URL: str = "https://www.tsunami.gov/events_json/events.json"
    USGS_EARTHQUAKE_URL: str = "https://earthquake.usgs.gov/fdsnws/event/1/query"
    FEED_TIMEOUT_SECONDS: float = 10.0
    FEED_USER_AGENT: str = "Maritime Tsunami Alerts (ops@maritime-alerts.example)"

    # ── Monitoring loop ──
    MONITOR_AUTOSTART: bool = False
    MONITOR_CHECK_INTERVAL_SECONDS: int = 300  # tsunami feeds refresh ~5 min
    EARTHQUAKE_LOOKBACK_HOURS: float = 6.0
    TSUNAMI_MIN_MAGNITUDE: float = 6.5
    TSUNAMI_MAX_DEPTH_KM: float = 100.0

    # ── Threat assessment ──
    MAX_THREAT_RANGE_KM: float = 1000.0
    NOTIFY_MIN_SEVERITY: str = "moderate"  # low | moderate | high | critical
    NOTIFY_MIN_CONFIDENCE: float = 0.3

    # ── Escalation ──
    DELIVERY_TIMEOUT_SECONDS: float = 10.0
    ESCALATION_SECONDS_PER_MINUTE: float = 60.0  # lower only for rehearsals
    ACK_BASE_URL: str = "http://localhost:8000/api/v1/alerts"

    # ── Fleet roster (vessels, contacts, policies) loaded at startup ──
    FLEET_SEED_FILE: Optional[str] = None

    # ── Channel providers (only "simulation" ships) ──
    SMS_PROVIDER: str = "simulation"
    VOICE_PROVIDER: str = "simulation"
    EMAIL_PROVIDER: str = "simulation"
    WHATSAPP_PROVIDER: str = "simulation"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
