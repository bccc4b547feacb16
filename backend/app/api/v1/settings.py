"""
FastAPI route: runtime settings snapshot.

    GET /api/v1/settings   — current snapshot (camelCase)
    PUT /api/v1/settings   — partial or full update; validated, versioned,
                             then propagated to every subscriber
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from backend.app.api.deps import get_container
from backend.app.core.container import ServiceContainer

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("")
async def get_settings_snapshot(
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return services.settings_service.current().model_dump(by_alias=True, mode="json")


@router.put("")
async def update_settings(
    payload: Dict[str, Any] = Body(..., examples=[{"monitoring": {"checkInterval": 120}}]),
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    snapshot = await services.settings_service.save(payload)
    return snapshot.model_dump(by_alias=True, mode="json")
