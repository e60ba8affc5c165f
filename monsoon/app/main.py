"""
FastAPI application entry point.

Run with:
    uvicorn monsoon.app.main:app --reload --port 5000

Or from the project root:
    python -m uvicorn monsoon.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from monsoon.app.core.cache import close_redis
from monsoon.app.core.config import settings
from monsoon.app.core.database import close_db, init_db
from monsoon.app.core.errors import PersistenceUnavailableError, register_error_handlers
from monsoon.app.core.health import run_health_check
from monsoon.app.core.logging_config import get_logger, setup_logging
from monsoon.app.core.middleware import RequestLoggingMiddleware

# ── API routers ──
from monsoon.app.api.v1.alerts import router as alert_router
from monsoon.app.api.v1.dashboard import router as dashboard_router
from monsoon.app.api.v1.incidents import router as incident_router
from monsoon.app.api.v1.wards import router as ward_router

from monsoon.app.realtime.websocket import serve_socket
from monsoon.app.services import Services, build_services, get_services
from monsoon.app.wards.demo import demo_wards

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


async def seed_demo_wards(services: Services) -> int:
    """Fill an empty ward store with the demo dataset."""
    count = await services.repository.count()
    if count != 0:
        return 0
    try:
        written = await services.repository.upsert_many(demo_wards())
    except PersistenceUnavailableError as e:
        logger.warning("Could not seed demo wards: %s", e.message)
        return 0
    logger.info("Seeded %d demo wards into the empty ward store", written)
    return written


def create_app(services_factory: Optional[Callable[[], Services]] = None) -> FastAPI:
    factory = services_factory or build_services

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown events."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        services = factory()
        app.state.services = services

        if await init_db() and settings.SEED_DEMO_WARDS:
            await seed_demo_wards(services)
        stored = services.incidents.load_stored()
        if stored:
            logger.info("Loaded %d stored incidents", stored)

        if settings.ENABLE_BACKGROUND_JOBS:
            await services.dispatcher.start()
            await services.ingestion.start()

        yield

        await services.close()
        await close_db()
        await close_redis()
        logger.info("Shutting down %s", settings.APP_NAME)

    # ── Create application ──

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Ward-level monsoon flood-risk dashboard backend for Delhi. "
            "Aggregates ward predictions from the external flood model, "
            "the local ward store and a built-in demo dataset, "
            "classifies wards into safe / alert / critical tiers with a "
            "0–100 preparedness score, ranks alerts, ingests live rainfall "
            "from OpenWeather or IMD, collects field incident reports, and "
            "pushes dashboard updates over WebSocket."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (order matters — outermost first) ──

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
    app.include_router(ward_router)
    app.include_router(alert_router)
    app.include_router(incident_router)
    app.include_router(dashboard_router)

    # ── Push channel ──

    @app.websocket("/ws")
    async def dashboard_socket(ws: WebSocket):
        services: Services = ws.app.state.services
        await serve_socket(ws, services.sockets, services.bus, services.dispatcher.store.view)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "ward-aggregation",
                "risk-classification",
                "alert-ranking",
                "alert-notices",
                "weather-ingestion",
                "incident-reporting",
                "realtime-dispatch",
            ],
            "docs": "/docs",
            "websocket": "/ws",
        }

    @app.get("/health", tags=["health"])
    async def health_check(services: Services = Depends(get_services)):
        """Deep health probe — checks all subsystems."""
        report = await run_health_check(services)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(services: Services = Depends(get_services)):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(services)
        if report.status.value == "unhealthy":
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
