"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_fastapi_instrumentator import Instrumentator

from ncc_monitor.api.errors import register_error_handlers
from ncc_monitor.api.routes import dashboard, detections, scans, serials
from ncc_monitor.config import settings
from ncc_monitor.logging_config import setup_logging
from ncc_monitor.monitor import MonitorService
from ncc_monitor.worker.scheduler import setup_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting NCC monitor...")

    # A monitor placed on app.state before startup is used as-is
    monitor = getattr(app.state, "monitor", None) or MonitorService.from_settings(settings)
    await monitor.initialize()
    app.state.monitor = monitor

    scheduler = None
    if settings.auto_scan_enabled:
        scheduler = setup_scheduler(monitor, settings)
        scheduler.start()
        logger.info("Scheduler started")

    yield

    logger.info("Shutting down...")
    if scheduler:
        scheduler.shutdown(wait=False)
    await monitor.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="NCC Monitor",
    description="Watch the web for leaked NCC certification serial numbers",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

register_error_handlers(app)

app.include_router(serials.router)
app.include_router(detections.router)
app.include_router(scans.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run(
        "ncc_monitor.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
