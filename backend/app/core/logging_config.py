"""
Structured logging configuration.

Two output formats, picked by ``LOG_FORMAT`` (``auto`` follows ENVIRONMENT):
    • json    one object per line for the log shipper
    • pretty  coloured console lines for operators tailing a terminal

Escalation and monitoring code tags records with ``extra=`` keys
(alert_id, vessel_id, event_id, step, channel). Both formatters surface
those tags, so a single alert can be followed through its steps with one
grep.

Usage:
    from backend.app.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Dispatching step", extra={"alert_id": "ALR-1", "step": 2})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.app.core.config import settings
from backend.app.settings_bus.bus import has_changed

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

# Alert-tracing tags, in display order
_TRACE_FIELDS = ("event_id", "vessel_id", "alert_id", "step", "channel")
# HTTP timing fields set by RequestLoggingMiddleware
_HTTP_FIELDS = ("duration_ms", "status_code", "endpoint")

# settings.system.logLevel → logging level
SNAPSHOT_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def set_request_context(**kwargs: Any) -> None:
    """Bind request-scoped fields; call with no arguments to clear."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _trace_tags(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in _TRACE_FIELDS
        if getattr(record, key, None) is not None
    }


# ── JSON (shipping) ──

class JSONFormatter(logging.Formatter):
    """One JSON object per record; trace tags nested under ``trace``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": settings.APP_NAME,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        trace = _trace_tags(record)
        if trace:
            entry["trace"] = trace

        for key in _HTTP_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        request = get_request_context()
        if request:
            entry["request"] = request

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str)


# ── Console (operators) ──

class PrettyFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [req] logger: message  alert=… step=…``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _paint(self, code: str, text: str) -> str:
        return f"{code}{text}{self.RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        parts: List[str] = [
            self.formatTime(record, "%H:%M:%S"),
            self._paint(self.COLORS.get(record.levelname, ""), f"{record.levelname:<8}"),
        ]

        request_id = get_request_context().get("request_id")
        if request_id:
            parts.append(f"[{request_id[:8]}]")

        parts.append(f"{record.name.rsplit('.', 1)[-1]}: {record.getMessage()}")

        trace = _trace_tags(record)
        if trace:
            tags = " ".join(f"{k.replace('_id', '')}={v}" for k, v in trace.items())
            parts.append(self._paint(self.DIM, tags))

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            line += f"\n    ↳ {type(exc).__name__}: {exc}"
        return line


# ── Setup ──

def _use_json() -> bool:
    fmt = settings.LOG_FORMAT.lower()
    if fmt == "auto":
        return settings.is_production
    return fmt == "json"


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, name, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(PrettyFormatter(use_color=sys.stdout.isatty()))
    root.addHandler(handler)

    # Feed polling would otherwise log every request
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def apply_snapshot_log_level(snapshot: Any, previous: Any = None) -> None:
    """Settings-bus handler: follow ``system.log_level`` of the new snapshot."""
    if not has_changed("system.log_level", snapshot, previous):
        return
    level = SNAPSHOT_LEVELS.get(snapshot.system.log_level, logging.INFO)
    logging.getLogger().setLevel(level)
    logging.getLogger(__name__).info("Log level set to %s", logging.getLevelName(level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
