"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.container import ServiceContainer, build_container
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.monitor import router as monitor_router
from backend.app.api.v1.settings import router as settings_router
from backend.app.api.v1.simulation import router as simulation_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)

ContainerFactory = Callable[[], ServiceContainer]


def create_app(container_factory: Optional[ContainerFactory] = None) -> FastAPI:
    """
    Build the application.

    ``container_factory`` lets callers (tests, embedding scripts) supply
    their own stores, adapters and timers; by default everything is built
    from environment settings.
    """
    factory = container_factory or build_container

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        container = factory()
        app.state.container = container
        await container.startup()
        yield
        logger.info("Shutting down %s", settings.APP_NAME)
        await container.shutdown()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Maritime tsunami threat assessment. "
            "Polls NOAA, PTWC and USGS hazard feeds, computes per-vessel "
            "wave height, ETA and severity, and escalates alerts to crew "
            "and shore contacts over SMS, WhatsApp, email and voice until "
            "someone acknowledges."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (last added is outermost) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(alert_router)
    app.include_router(monitor_router)
    app.include_router(settings_router)
    app.include_router(simulation_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "hazard-feeds",
                "threat-assessment",
                "escalation",
                "settings-bus",
                "simulation",
            ],
            "docs": "/docs",
        }

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Readiness probe — services built and monitor state."""
        container: ServiceContainer = app.state.container
        return {"status": "ready", "monitor": container.monitor.status()}

    return app


app = create_app()
