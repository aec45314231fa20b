"""Main FastAPI application for the collection backup service."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
import logging
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from collector_backup.core import config
from collector_backup.core.db import init_db
from collector_backup.core.exceptions import register_exception_handlers
from collector_backup.core.logging import setup_logging
from collector_backup.core.scheduler import BackupScheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger = logging.getLogger(__name__)
    init_db()

    scheduler = BackupScheduler()
    app.state.scheduler = scheduler
    if config.scheduler_autostart():
        scheduler.start()
        logger.info("Backup scheduler started (cron=%s, UTC)", scheduler.cron)
    else:
        logger.info("Backup scheduler autostart disabled")

    yield

    # Shutdown
    scheduler.stop()
    logger.info("Backup scheduler shutdown")


app = FastAPI(
    title="Collection Backup API",
    description="Backup, cloud upload and restore for the collection database",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

register_exception_handlers(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from collector_backup.api import health, backups, scheduler, settings  # noqa: E402

# Mount health endpoints unversioned for infra probes (/health, /ready)
app.include_router(health.router)

# Mount application APIs under versioned prefix
app.include_router(backups.router, prefix="/api/v1")
app.include_router(scheduler.router, prefix="/api/v1")
app.include_router(settings.router, prefix="/api/v1")


@app.get("/")
async def root() -> RedirectResponse:
    """Redirect root to Swagger UI."""
    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
