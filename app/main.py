"""
Scheduled Message Dispatcher - Main Application Entry Point

Delivers queued WhatsApp messages for CRM tenants using FastAPI,
SQLAlchemy, APScheduler and an HTTP WhatsApp gateway.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.dispatch import router as dispatch_router
from app.api.messages import router as messages_router
from app.infrastructure.database import init_database
from app.infrastructure.scheduler import start_scheduler, stop_scheduler, get_scheduler
from app.config.settings import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Scheduled Message Dispatcher...")

    logger.info("Initializing database...")
    await init_database()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        logger.info("Starting scheduler...")
        await start_scheduler()
    else:
        logger.info("Scheduler disabled; dispatch runs only when triggered over HTTP")

    logger.info("Application startup complete!")
    logger.info(
        f"Batch size: {settings.batch_size}, retry limit: {settings.retry_limit}, "
        f"retry delay: {settings.retry_delay_minutes} min"
    )

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_scheduler()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Scheduled Message Dispatcher",
    description="Delivers scheduled WhatsApp messages with retries and bot opt-outs",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["POST", "GET", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Register routers
app.include_router(dispatch_router, tags=["Dispatch"])
app.include_router(messages_router, tags=["Queue"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Scheduled Message Dispatcher",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "dispatch": "/functions/process-scheduled-messages",
            "messages": "/messages",
            "health": "/health"
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "scheduled-message-dispatcher"}


@app.get("/scheduler/status")
async def scheduler_status():
    """Get scheduler status and pending jobs."""
    scheduler = get_scheduler()

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs_count": len(jobs),
        "jobs": jobs
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
