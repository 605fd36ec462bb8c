"""Core business logic services."""

from beacon.services.ai_analysis_service import AIAnalysisService, get_ai_analysis_service
from beacon.services.ai_cache_service import AICacheService
from beacon.services.ai_cost_service import AICostService
from beacon.services.ai_provider import AIConfig, AIService, create_ai_service
from beacon.services.ai_usage_service import AIUsageService, LimitValues, UsageData
from beacon.services.error_event_service import ErrorEventService
from beacon.services.error_processing_service import ErrorProcessingService
from beacon.services.logto_webhook_service import LogtoWebhookService
from beacon.services.main_app_client import MainAppClient, get_main_app_client
from beacon.services.vector_store import Document, VectorStore

__all__ = [
    "AIAnalysisService",
    "AICacheService",
    "AIConfig",
    "AICostService",
    "AIService",
    "AIUsageService",
    "Document",
    "ErrorEventService",
    "ErrorProcessingService",
    "LimitValues",
    "LogtoWebhookService",
    "MainAppClient",
    "UsageData",
    "VectorStore",
    "create_ai_service",
    "get_ai_analysis_service",
    "get_main_app_client",
]
