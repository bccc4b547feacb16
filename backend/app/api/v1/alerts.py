"""
FastAPI route: alert acknowledgment and escalation introspection.

Provides endpoints to:
    POST /api/v1/alerts/{id}/acknowledge   — acknowledge, halting escalation
    GET  /api/v1/alerts/{id}               — alert record
    GET  /api/v1/alerts/{id}/escalation    — escalation state
    GET  /api/v1/alerts/{id}/attempts      — notification attempt audit trail
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.api.deps import get_container
from backend.app.core.container import ServiceContainer
from backend.app.core.errors import NotFoundError

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class AcknowledgeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    acknowledged_by: Optional[str] = Field(
        None, description="Who acknowledged", examples=["Capt. Mori"],
    )


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: str,
    body: Optional[AcknowledgeRequest] = Body(None),
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Acknowledge an alert. Repeating the call is harmless: the response
    reports ``alreadyAcknowledged`` and nothing changes.
    """
    changed = await services.orchestrator.acknowledge(
        alert_id, body.acknowledged_by if body else None,
    )
    alert = services.alerts.get(alert_id)
    return {
        "success": True,
        "alreadyAcknowledged": not changed,
        "alert": alert.to_dict(),
    }


@router.get("/{alert_id}")
async def get_alert(
    alert_id: str,
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    alert = services.alerts.get(alert_id)
    if alert is None:
        raise NotFoundError("Alert", alert_id=alert_id)
    return alert.to_dict()


@router.get("/{alert_id}/escalation")
async def get_escalation(
    alert_id: str,
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return services.orchestrator.status(alert_id)


@router.get("/{alert_id}/attempts")
async def get_attempts(
    alert_id: str,
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    attempts = services.orchestrator.attempts(alert_id)
    return {
        "alertId": alert_id,
        "count": len(attempts),
        "attempts": [a.to_dict() for a in attempts],
    }
