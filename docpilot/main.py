"""Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import scheduler_router, scripts_router, tasks_router, webhooks_router
from .container import Services, get_services
from .core.config import ConfigurationError, Environment, settings
from .core.logging_config import setup_logging
from .exceptions import DocpilotException
from .middleware.exception_handler import docpilot_exception_handler
from .middleware.request_context import RequestContextMiddleware

# Setup logging first
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the docpilot API."""
    # --- Security validation ---
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        if not settings.github_webhook_secret:
            logger.warning(
                "SECURITY: GITHUB_WEBHOOK_SECRET is empty. "
                "Webhook signature verification is disabled."
            )

        origins = settings.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            logger.warning(
                "CORS allows localhost origins: %s. Remove these for production.",
                localhost_origins,
            )

    services = get_services()

    # --- Report scripts that cannot run ---
    for registry in (services.scripts, services.jobs):
        missing = [spec.name for spec in registry.all() if not registry.is_available(spec)]
        if missing:
            logger.warning("Script files not found under %s: %s", registry.scripts_root, ", ".join(missing))

    # --- Scheduler ---
    if settings.scheduler_enabled:
        services.scheduler.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield  # App runs here

    await services.scheduler.stop()
    await services.runner.wait_for_escalations()


# Create FastAPI app
app = FastAPI(
    title="docpilot API",
    description=(
        "Automation backend for an AI-driven documentation portal. "
        "Provides the dependency-aware pipeline task queue, admin script and "
        "scheduled job execution with execution history, and the GitHub "
        "webhook that routes issue events to document scripts."
    ),
    version=VERSION,
    license_info={"name": "MIT", "url": "https://opensource.org/licenses/MIT"},
    lifespan=lifespan,
)

# Middleware stack (outermost first, so CORS wraps request context).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(RequestContextMiddleware)

# Register exception handlers
app.add_exception_handler(DocpilotException, docpilot_exception_handler)

logger.info(
    "docpilot API started | env=%s | queue=%s | scheduler=%s | cors=%s",
    settings.environment.value,
    settings.task_queue_path,
    "enabled" if settings.scheduler_enabled else "disabled",
    ",".join(settings.get_cors_origins()),
)

# Include routers
app.include_router(tasks_router)
app.include_router(scripts_router)
app.include_router(scheduler_router)
app.include_router(webhooks_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "docpilot API",
        "version": VERSION,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check(services: Services = Depends(get_services)):
    """Health check endpoint returning queue status, uptime, and task counts.

    Never raises. An unreadable queue file loads as empty, so the counts
    drop to zero rather than failing the probe.
    """
    stats = services.queue.get_queue_stats()
    return {
        "status": "healthy",
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": VERSION,
        "scheduler": "running" if services.scheduler.is_running else "stopped",
        "tasks": stats.model_dump(by_alias=True),
    }
