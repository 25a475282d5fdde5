"""
FastAPI application initialization
"""

from typing import Optional

from fastapi import FastAPI
from api.routes import health, sync
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
from ingestion.scheduler import SyncScheduler
import logging

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Veevalve Water Quality Sync API",
    description="Synchronizes Terviseamet pool and beach water quality open data",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Created on startup so APScheduler binds to the running event loop
scheduler: Optional[SyncScheduler] = None

app.include_router(health.router)
app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    global scheduler

    logger.info("Starting Veevalve Water Quality Sync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler = SyncScheduler()
        scheduler.start()
    else:
        logger.info("Sync scheduler disabled")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Veevalve Water Quality Sync API")
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Veevalve Water Quality Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync": "/water-quality/sync"
        }
    }
