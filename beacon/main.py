"""Main application: users, companies, AI usage accounting and Logto sync."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from beacon.api.errors import setup_exception_handlers
from beacon.api.router import main_router
from beacon.config import settings
from beacon.core.database import (
    check_database_connection,
    close_database,
    get_session_context,
)
from beacon.core.events import get_event_publisher
from beacon.core.logging_config import configure_logging
from beacon.exceptions import RabbitMQError
from beacon.services.ai_cost_service import AICostService

configure_logging(settings, "main")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed AI cost configs and connect the event publisher.

    The publisher is best effort: when RabbitMQ is down the app still starts
    and events are only logged.
    """
    logger.info(f"Starting {settings.main_service_name} v{settings.api_version}")

    try:
        async with get_session_context() as session:
            created = await AICostService(session).seed_default_costs()
        logger.info(f"AI cost configs seeded ({created} created)")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    publisher = get_event_publisher()
    try:
        await publisher.connect()
    except RabbitMQError as e:
        logger.warning(f"Event publisher unavailable, events will only be logged: {e.message}")

    yield

    logger.info("Shutting down...")
    await publisher.close()
    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title=f"{settings.api_title} (main)",
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
    return {"status": "healthy", "service": settings.main_service_name}


@app.get("/ready")
async def readiness_check():
    """Readiness probe; 503 until the database answers."""
    db_healthy = await check_database_connection()
    body = {
        "ready": db_healthy,
        "checks": {"database": "connected" if db_healthy else "disconnected"},
    }
    if not db_healthy:
        return JSONResponse(status_code=503, content=body)
    return body


app.include_router(main_router)
