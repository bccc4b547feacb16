"""
FastAPI dependencies resolving the services built in the lifespan.
"""

from __future__ import annotations

from fastapi import Request

from backend.app.core.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
