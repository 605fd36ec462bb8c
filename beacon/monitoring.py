"""Monitoring application: error ingestion, grouping and AI analysis."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from beacon.api.errors import setup_exception_handlers
from beacon.api.router import monitoring_router
from beacon.config import settings
from beacon.consumers.process_event import (
    get_consumer,
    start_consumer_background,
    stop_consumer,
)
from beacon.core.database import (
    check_database_connection,
    close_database,
    init_pgvector_extension,
)
from beacon.core.events import get_dispatcher, get_event_publisher
from beacon.core.logging_config import configure_logging

configure_logging(settings, "monitoring")
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

_consumer_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown events including:
    - PGVector extension setup
    - Event publisher and job dispatcher connections
    - ProcessEvent consumer startup
    """
    global _consumer_task

    logger.info(f"Starting {settings.monitoring_service_name} v{settings.api_version}")

    publisher = get_event_publisher()
    dispatcher = get_dispatcher()

    try:
        await init_pgvector_extension()
        logger.info("Database initialized")

        await publisher.connect()
        await dispatcher.connect()

        _consumer_task = await start_consumer_background()
        logger.info("ProcessEvent consumer started")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down...")

    if _consumer_task is not None:
        await stop_consumer()
        _consumer_task.cancel()
        try:
            await _consumer_task
        except asyncio.CancelledError:
            pass
        _consumer_task = None
        logger.info("ProcessEvent consumer stopped")

    await dispatcher.close()
    await publisher.close()
    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title=f"{settings.api_title} (monitoring)",
    version=settings.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


@app.get("/health")
async def health_check():
    """Basic liveness probe."""
    return {"status": "healthy", "service": settings.monitoring_service_name}


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint.

    Verifies that the database and the ProcessEvent consumer are connected.
    """
    db_healthy = await check_database_connection()
    consumer_healthy = await get_consumer().check_connection()

    is_ready = db_healthy and consumer_healthy
    body = {
        "ready": is_ready,
        "checks": {
            "database": "connected" if db_healthy else "disconnected",
            "rabbitmq": "connected" if consumer_healthy else "disconnected",
        },
    }
    if not is_ready:
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/version")
async def version():
    return {"version": VERSION}


app.include_router(monitoring_router)
