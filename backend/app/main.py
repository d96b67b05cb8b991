"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import Settings, get_settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import run_health_check
from backend.app.core.database import close_db, get_engine, get_session_factory, init_db

# ── SOS pipeline ──
from backend.app.alerts.channels import NotificationChannel, build_channel
from backend.app.alerts.directory import SqlAlchemyUserDirectory, UserDirectory
from backend.app.alerts.dispatcher import SOSDispatcher
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.store import AlertStore, SqlAlchemyAlertStore

# ── API routers ──
from backend.app.api.v1.emergency import router as emergency_router
from backend.app.api.v1.admin_alerts import router as admin_alerts_router

logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    config: Settings = app.state.settings
    logger.info(
        "Starting %s v%s [%s] (SMS channel: %s)",
        config.APP_NAME, config.APP_VERSION, config.ENVIRONMENT, app.state.channel.name,
    )
    if app.state.engine is not None and config.is_development:
        await init_db(app.state.engine)
    yield
    # Shutdown: let in-flight dispatches and repeat sends finish, then close connections
    await app.state.dispatcher.drain()
    await app.state.channel.aclose()
    if app.state.engine is not None:
        await close_db()
    logger.info("Shutting down %s", config.APP_NAME)


# ── Application factory ──

def create_app(
    config: Optional[Settings] = None,
    *,
    alert_store: Optional[AlertStore] = None,
    user_directory: Optional[UserDirectory] = None,
    channel: Optional[NotificationChannel] = None,
) -> FastAPI:
    """
    Build the application and wire the SOS pipeline.

    Without injected stores the SQL directory and alert store are used over
    ``DATABASE_URL``; without an injected channel one is chosen from the
    Twilio settings.
    """
    config = config or get_settings()

    app = FastAPI(
        title=config.APP_NAME,
        description=(
            "Tourist safety backend. Dispatches SOS alerts to a tourist's "
            "emergency contacts and the police over SMS, records every "
            "delivery outcome, and lets admins resolve alerts."
        ),
        version=config.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = None
    if alert_store is None or user_directory is None:
        engine = get_engine(config)
        session_factory = get_session_factory(config)
        alert_store = alert_store or SqlAlchemyAlertStore(session_factory)
        user_directory = user_directory or SqlAlchemyUserDirectory(
            session_factory, contact_limit=config.MAX_EMERGENCY_CONTACTS,
        )
    channel = channel or build_channel(config)

    app.state.settings = config
    app.state.engine = engine
    app.state.channel = channel
    app.state.alert_store = alert_store
    app.state.user_directory = user_directory
    app.state.dispatcher = SOSDispatcher.from_settings(config, channel, user_directory, alert_store)
    app.state.lifecycle = AlertLifecycleManager(alert_store)

    # ── Middleware stack (order matters — outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS if not config.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(emergency_router)
    app.include_router(admin_alerts_router)

    _register_root_routes(app)
    return app


# ── Root & health endpoints ──

def _register_root_routes(app: FastAPI) -> None:

    @app.get("/", tags=["root"])
    async def root(request: Request):
        config = request.app.state.settings
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
            "sms_mode": "live" if request.app.state.channel.is_live else "demo",
            "modules": ["sos-dispatch", "emergency-contacts", "alert-lifecycle"],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe — checks all subsystems."""
        state = request.app.state
        report = await run_health_check(state.settings, state.channel, state.engine)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Kubernetes readiness probe — can we serve traffic?"""
        state = request.app.state
        report = await run_health_check(state.settings, state.channel, state.engine)
        if report.status.value == "unhealthy":
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()


# ── Initialise logging ──
setup_logging()

app = create_app()
