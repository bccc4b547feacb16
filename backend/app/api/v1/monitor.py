"""
FastAPI route: tsunami monitoring loop control.

    GET  /api/v1/monitor/status
    POST /api/v1/monitor/start    — idempotent
    POST /api/v1/monitor/stop     — idempotent
    POST /api/v1/monitor/tick     — run one tick now and return its report
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.app.api.deps import get_container
from backend.app.core.container import ServiceContainer

router = APIRouter(prefix="/api/v1/monitor", tags=["monitoring"])


@router.get("/status")
async def monitor_status(services: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    return services.monitor.status()


@router.post("/start")
async def start_monitor(services: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    started = await services.monitor.start()
    return {"started": started, **services.monitor.status()}


@router.post("/stop")
async def stop_monitor(services: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    stopped = await services.monitor.stop()
    return {"stopped": stopped, **services.monitor.status()}


@router.post("/tick")
async def run_tick(services: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    report = await services.monitor.run_tick()
    return report.to_dict()
