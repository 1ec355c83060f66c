"""
Application entry point.

Creates the FastAPI application and wires together:
- Routers (health, cron operator surface)
- Error handlers (centralized domain-to-HTTP mapping)
- Rate limiting
- Logging configuration
- Scheduler lifecycle (APScheduler clock + price-sync jobs)

No business logic belongs here.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from pricesync.application.market.scheduler import JobScheduler
from pricesync.core.config import settings
from pricesync.interfaces.cron.dependencies import (
    get_db_engine,
    get_job_scheduler,
    get_trigger_port,
)
from pricesync.interfaces.cron.router import router as cron_router
from pricesync.interfaces.health import router as health_router
from pricesync.shared.errors.handlers import register_error_handlers
from pricesync.shared.logging import configure_logging
from pricesync.shared.security.rate_limiting import limiter, rate_limit_exceeded_handler

logger = logging.getLogger(__name__)

DB_PROBE_INTERVAL_SECONDS = 30.0


async def _probe_until_connected(scheduler: JobScheduler) -> None:
    """Open a pool connection periodically so a deferred start can fire."""
    engine = get_db_engine()
    while scheduler.awaiting_connection:
        await asyncio.sleep(DB_PROBE_INTERVAL_SECONDS)
        try:
            await asyncio.to_thread(lambda: engine.connect().close())
        except Exception as exc:
            logger.debug("Database still unreachable: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: start/stop the scheduler and its clock."""
    triggers = get_trigger_port()
    scheduler = get_job_scheduler()
    probe = None

    triggers.start()
    scheduler.register()
    if settings.scheduler_autostart:
        scheduler.start()
        if scheduler.awaiting_connection:
            probe = asyncio.create_task(_probe_until_connected(scheduler))

    yield

    # Shutdown
    if probe is not None:
        probe.cancel()
        with suppress(asyncio.CancelledError):
            await probe
    scheduler.stop()
    triggers.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Registers routers, error handlers, and rate limiting.
    This is the composition root of the application.

    Returns:
        A fully configured FastAPI application instance.
    """
    configure_logging(level=settings.log_level, log_dir=settings.log_dir)

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # --- Rate Limiting ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # --- Error Handlers ---
    register_error_handlers(app)

    # --- Routers ---
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(cron_router, prefix="/api/v1")

    return app


app = create_app()
