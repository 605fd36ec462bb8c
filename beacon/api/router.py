"""API routers for the main and monitoring applications."""

from fastapi import APIRouter

from beacon.api.monitoring import (
    ai_analysis,
    ai_cache,
    ai_grouping,
    errors,
    ingestion,
    projects,
)
from beacon.api.v1 import ai_usage, auth, companies, m2m, users, webhooks
from beacon.config import settings

# Main application: users, companies, AI usage and Logto integration
main_router = APIRouter()

main_router.include_router(auth.router, prefix=settings.api_v1_prefix)
main_router.include_router(m2m.router, prefix=settings.api_v1_prefix)
main_router.include_router(ai_usage.router, prefix=settings.api_v1_prefix)
main_router.include_router(webhooks.router, prefix="/api")

# Admin panel routes authenticate with local tokens
main_router.include_router(users.router)
main_router.include_router(companies.router)

# Monitoring application: SDK ingestion, error browsing and AI features
monitoring_router = APIRouter()

monitoring_router.include_router(ingestion.router, prefix="/api")
monitoring_router.include_router(projects.router)
monitoring_router.include_router(errors.router)
monitoring_router.include_router(ai_analysis.router, prefix="/api")
monitoring_router.include_router(ai_cache.router, prefix="/api")
monitoring_router.include_router(ai_grouping.router, prefix="/api")
