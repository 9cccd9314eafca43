"""who-you-gonna-call FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from wygc import __version__
from wygc.config import settings
from wygc.dispatcher import close_dispatcher, get_engine
from wygc.logging_config import get_logger, setup_logging
from wygc.middleware import CorrelationIdMiddleware
from wygc.routers import alerts, health, oncall
from wygc.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    engine = get_engine()
    logger.info(
        "Alert dispatcher started",
        channels=[channel.name for channel in engine.registry.enabled_channels()],
        configuration_errors=len(engine.registry.configuration_errors),
    )

    if not settings.testing:
        start_scheduler()

    yield

    logger.info("Shutting down alert dispatcher...")
    stop_scheduler()
    await close_dispatcher()
    logger.info("Alert dispatcher shutdown complete")


app = FastAPI(
    title="who-you-gonna-call",
    description="Tiered alert escalation dispatcher",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(alerts.router)
app.include_router(oncall.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "who-you-gonna-call",
        "version": __version__,
        "docs": "/docs",
    }


def run() -> None:
    """Serve the application on the configured address."""
    uvicorn.run(
        "wygc.main:app",
        host=settings.bind_address,
        port=settings.bind_port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
