"""
FastAPI route: manual tsunami scenario.

    POST /api/v1/simulation/tsunami

Request (camelCase):
    epicenterLat, epicenterLon, magnitude     required
    depth (30), faultType ("thrust"), faultStrike, faultLength, faultWidth
    sendNotifications (false → dry run), vesselIds (default: whole fleet)

Invalid coordinates or negative magnitude/depth come back as the
standard error envelope (422).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.api.deps import get_container
from backend.app.core.container import ServiceContainer
from backend.app.monitoring.simulation import TsunamiScenario, simulate_tsunami
from backend.app.threat.models import FaultType

router = APIRouter(prefix="/api/v1/simulation", tags=["simulation"])


class SimulationRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    epicenter_lat: float = Field(..., examples=[38.2])
    epicenter_lon: float = Field(..., examples=[142.8])
    magnitude: float = Field(..., examples=[8.2])
    depth: float = Field(30.0, description="Focal depth (km)")
    fault_type: FaultType = FaultType.THRUST
    fault_strike: Optional[float] = Field(None, description="Strike (degrees)")
    fault_length: Optional[float] = Field(None, description="Rupture length (km)")
    fault_width: Optional[float] = Field(None, description="Rupture width (km)")
    send_notifications: bool = False
    vessel_ids: Optional[List[str]] = None


@router.post("/tsunami")
async def simulate(
    req: SimulationRequest,
    services: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    scenario = TsunamiScenario(
        epicenter_lat=req.epicenter_lat,
        epicenter_lon=req.epicenter_lon,
        magnitude=req.magnitude,
        depth_km=req.depth,
        fault_type=req.fault_type,
        fault_strike_deg=req.fault_strike,
        fault_length_km=req.fault_length,
        fault_width_km=req.fault_width,
        send_notifications=req.send_notifications,
        vessel_ids=req.vessel_ids,
    )
    return await simulate_tsunami(
        scenario,
        vessels=services.vessels,
        alerts=services.alerts,
        orchestrator=services.orchestrator,
        config=services.config,
    )
