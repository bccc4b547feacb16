"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Propagation policy:
    • Calculator validation errors (InvalidCoordinate, InvalidParameter,
      InvalidSpeed) propagate to the immediate caller, never retried.
    • NoPolicyMatched, DeliveryFailed and FetchFailed are caught at the
      loop-iteration boundary by the monitor / orchestrator and logged.
    • SettingsValidationFailed rejects a settings save outright.

Usage:
    from backend.app.core.errors import InvalidCoordinate

    raise InvalidCoordinate(latitude=91.0, longitude=0.0)
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class TsunamiAlertError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(TsunamiAlertError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class InvalidCoordinate(TsunamiAlertError, ValueError):
    """Latitude outside [-90, 90] or longitude outside [-180, 180] (422)."""

    def __init__(self, latitude: float, longitude: float):
        super().__init__(
            message=f"Invalid coordinate ({latitude}, {longitude})",
            status_code=422,
            error_code="INVALID_COORDINATE",
            details={"latitude": latitude, "longitude": longitude},
        )


class InvalidParameter(TsunamiAlertError, ValueError):
    """A physical parameter is out of its domain (422)."""

    def __init__(self, name: str, value: Any, reason: str = "must be >= 0"):
        super().__init__(
            message=f"Invalid parameter {name}={value}: {reason}",
            status_code=422,
            error_code="INVALID_PARAMETER",
            details={"parameter": name, "value": value},
        )


class InvalidSpeed(TsunamiAlertError, ValueError):
    """ETA requested with a non-positive propagation speed (422)."""

    def __init__(self, speed_kmh: float):
        super().__init__(
            message=f"Propagation speed must be > 0, got {speed_kmh}",
            status_code=422,
            error_code="INVALID_SPEED",
            details={"speed_kmh": speed_kmh},
        )


class NoPolicyMatched(TsunamiAlertError):
    """No active escalation policy covers the alert type and severity (404)."""

    def __init__(self, alert_id: str, event_type: str, severity: str):
        super().__init__(
            message=(
                f"No active escalation policy for {event_type}/{severity} "
                f"(alert {alert_id})"
            ),
            status_code=404,
            error_code="NO_POLICY_MATCHED",
            details={
                "alert_id": alert_id,
                "event_type": event_type,
                "severity": severity,
            },
        )


class DeliveryFailed(TsunamiAlertError):
    """A channel adapter did not deliver (502)."""

    def __init__(self, channel: str, contact_id: str, message: str = ""):
        super().__init__(
            message=f"Delivery via {channel} to {contact_id} failed: {message}",
            status_code=502,
            error_code="DELIVERY_FAILED",
            details={"channel": channel, "contact_id": contact_id},
        )


class FetchFailed(TsunamiAlertError):
    """An external hazard feed could not be fetched or parsed (502)."""

    def __init__(self, source: str, message: str = ""):
        super().__init__(
            message=f"Feed '{source}' failed: {message}",
            status_code=502,
            error_code="FETCH_FAILED",
            details={"source": source},
        )


class SettingsValidationFailed(TsunamiAlertError):
    """A settings update failed schema validation (422)."""

    def __init__(self, errors: Any):
        super().__init__(
            message="Settings update rejected",
            status_code=422,
            error_code="SETTINGS_VALIDATION_FAILED",
            details={"errors": errors},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(TsunamiAlertError)
    async def handle_domain_error(request: Request, exc: TsunamiAlertError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
