"""AI features of the monitoring application.

Wraps the AI service with the error-specific prompts, the shared analysis
cache and usage reporting to the main application. When no API key is
configured every operation degrades to ``None`` or an empty list.
"""

import hashlib
import json
import logging
import math
import re
import time
import uuid
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.config import settings
from beacon.core.database import get_session_context
from beacon.exceptions import BeaconError
from beacon.models.ai_cache import AnalysisType
from beacon.models.ai_usage import AIOperation
from beacon.models.error_events import ErrorEvent
from beacon.repositories.projects import ProjectRepository
from beacon.services.ai_cache_service import AICacheService
from beacon.services.ai_provider import (
    AIConfig,
    AIService,
    analyze_error,
    create_ai_service,
    parse_json_response,
)
from beacon.services.main_app_client import MainAppClient, get_main_app_client
from beacon.services.vector_store import Document, VectorStore

logger = logging.getLogger(__name__)

ERRORS_NAMESPACE = "errors"

GROUPING_PROMPT = """Analyze these {count} errors and suggest optimal grouping strategies.

Current errors:
{errors}

Suggest groupings that would:
1. Group truly related errors together
2. Separate distinct issues even if they have similar messages
3. Consider root causes, not just surface symptoms
4. Be meaningful for developers to track and fix

Return a JSON object with the following structure:
{{
  "suggestedGroups": [
    {{
      "groupName": "descriptive name for the group",
      "groupDescription": "detailed description of what these errors have in common",
      "errorIds": ["error_id1", "error_id2"],
      "commonPatterns": ["pattern1", "pattern2"],
      "confidence": 0.9
    }}
  ],
  "reasoning": "explanation of the grouping logic"
}}"""

TRENDS_PROMPT = """Analyze these error trends and provide insights:

Period: {period}

Error Trends by Time:
{trends}

Top Error Types:
{top_errors}

Provide analysis in JSON format with:
{{
  "summary": "Overall trend summary",
  "insights": ["insight1", "insight2", "insight3"],
  "recommendations": ["recommendation1", "recommendation2"],
  "anomalies": [
    {{
      "description": "Spike in errors at specific time",
      "severity": "high",
      "timestamp": "2024-01-15T10:00:00Z"
    }}
  ]
}}"""

SUGGESTED_FIX_PROMPT = """
Based on this error, provide a specific fix:

Error Type: {type}
Error Message: {message}
Platform: {platform}
Environment: {environment}

Provide a concise, actionable fix that a developer can implement.
"""

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.I)
_HEX_RE = re.compile(r"0x[0-9a-f]+", re.I)
_QUOTED_RE = re.compile(r"[\"'][^\"']+[\"']")


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text) / 4)


def normalize_error_message(message: str) -> str:
    """Strip the variable parts of an error message."""
    normalized = re.sub(r"\d+", "N", message)
    normalized = _UUID_RE.sub("UUID", normalized)
    normalized = _HEX_RE.sub("0xHEX", normalized)
    normalized = _QUOTED_RE.sub('"..."', normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def generate_error_fingerprint(event: ErrorEvent) -> str:
    parts = [event.type, normalize_error_message(event.message), event.platform]
    return hashlib.sha256("::".join(parts).encode()).hexdigest()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class AIAnalysisService:
    """Error analysis, grouping suggestions, trends and similarity search.

    Attributes:
        session_factory: Opens database sessions for the cache and project lookups.
        main_app: Client used to report AI usage to the main application.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session_context,
        main_app: MainAppClient | None = None,
        ai: AIService | None = None,
    ):
        self.session_factory = session_factory
        self.main_app = main_app or get_main_app_client()
        self._ai = ai
        self._initialized = ai is not None

    @property
    def ai(self) -> AIService | None:
        """Get or create the AI service; None when AI is not configured."""
        if not self._initialized:
            self._initialized = True
            if not settings.ai_api_key:
                logger.warning("AI API key not configured, AI features will be disabled")
                return None
            try:
                config = AIConfig.from_settings(settings)
                self._ai = create_ai_service(config, VectorStore(self.session_factory))
                logger.info("AI service initialized successfully")
            except (BeaconError, PydanticValidationError) as e:
                logger.error(f"Failed to initialize AI service: {e}")
        return self._ai

    @property
    def provider(self) -> str:
        return self._ai.config.provider if self._ai else "unknown"

    @property
    def model(self) -> str:
        return self._ai.default_model if self._ai else "unknown"

    async def analyze_error(self, event: ErrorEvent) -> dict[str, Any] | None:
        """Structured analysis of an event, served from the cache when possible."""
        ai = self.ai
        if ai is None:
            logger.debug("AI service not available, skipping error analysis")
            return None

        error_context = {
            "message": event.message,
            "type": event.type,
            "stackTrace": event.stack_trace or None,
            "context": {
                "platform": event.platform,
                "environment": event.environment,
                "release": event.release,
                "url": event.url,
                "method": event.method,
                "statusCode": event.status_code,
                "tags": event.tags,
                "extra": event.extra,
            },
        }
        fingerprint_hash = generate_error_fingerprint(event)

        async with self.session_factory() as session:
            cached = await AICacheService(session).get_cached_analysis(
                fingerprint_hash,
                AnalysisType.ERROR_ANALYSIS,
                project_id=event.project_id,
            )
            if cached is not None:
                initial_tokens = cached.metadata_.get("initialTokens", {})
                tokens_saved = initial_tokens.get("prompt", 0) + initial_tokens.get("completion", 0)
                result = json.loads(cached.analysis_result)

        if cached is not None:
            logger.info(f"Error analysis for {event.id} served from cache")
            await self.track_usage(
                event.project_id,
                operation=AIOperation.GENERATE,
                prompt_tokens=0,
                completion_tokens=0,
                latency_ms=0,
                success=True,
                feature="error_analysis_cached",
                metadata={"cacheHit": True, "tokensSaved": tokens_saved},
            )
            return result

        prompt_text = json.dumps(error_context, default=str)
        start = time.monotonic()
        try:
            analysis = await analyze_error(ai, error_context)
            prompt_tokens = estimate_tokens(prompt_text)
            completion_tokens = estimate_tokens(json.dumps(analysis))

            async with self.session_factory() as session:
                await AICacheService(session).cache_analysis(
                    fingerprint_hash,
                    AnalysisType.ERROR_ANALYSIS,
                    analysis,
                    provider=self.provider,
                    model=self.model,
                    prompt=prompt_text,
                    project_id=event.project_id,
                    confidence_score=0.9,
                    error_patterns=[event.type, event.message],
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                )
        except Exception as e:
            logger.error(f"Failed to analyze error {event.id}: {e}")
            await self.track_usage(
                event.project_id,
                operation=AIOperation.GENERATE,
                prompt_tokens=estimate_tokens(prompt_text),
                completion_tokens=0,
                latency_ms=_elapsed_ms(start),
                success=False,
                error_message=str(e),
                feature="error_analysis",
            )
            return None

        await self.track_usage(
            event.project_id,
            operation=AIOperation.GENERATE,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="error_analysis",
        )
        logger.info(f"Error {event.id} analyzed successfully")
        return analysis

    async def suggest_error_grouping(self, events: list[ErrorEvent]) -> dict[str, Any] | None:
        """Ask the model how ``events`` should be grouped.

        Returns:
            ``{suggestedGroups, reasoning}`` or None when fewer than two events
            are given or generation fails.
        """
        ai = self.ai
        if ai is None or len(events) < 2:
            return None

        error_data = [
            {
                "id": event.id,
                "type": event.type,
                "message": event.message,
                "stackTrace": (event.stack_trace or "")[:500],
                "fingerprint": event.fingerprint,
                "platform": event.platform,
                "environment": event.environment,
            }
            for event in events
        ]
        prompt = GROUPING_PROMPT.format(
            count=len(events),
            errors=json.dumps(error_data, indent=2, default=str),
        )

        start = time.monotonic()
        try:
            response = await ai.generate(prompt, temperature=0.7, max_tokens=2000)
            result = parse_json_response(response)
        except BeaconError as e:
            logger.error(f"Failed to generate grouping suggestions: {e}")
            return None

        result.setdefault("suggestedGroups", [])
        await self.track_usage(
            events[0].project_id,
            operation=AIOperation.GENERATE,
            prompt_tokens=estimate_tokens(prompt),
            completion_tokens=estimate_tokens(json.dumps(result)),
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="error_grouping_suggestions",
        )
        logger.info(
            f"AI grouping suggestions generated: {len(result['suggestedGroups'])} groups "
            f"for {len(events)} errors"
        )
        return result

    async def analyze_trends(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Summarise error trends: ``{summary, insights, recommendations, anomalies}``."""
        ai = self.ai
        if ai is None:
            return None

        prompt = TRENDS_PROMPT.format(
            period=data["period"],
            trends=json.dumps(data["trends"], indent=2, default=str),
            top_errors=json.dumps(data["topErrors"], indent=2, default=str),
        )

        start = time.monotonic()
        try:
            response = await ai.generate(prompt, temperature=0.7, max_tokens=1500)
            analysis = parse_json_response(response)
        except BeaconError as e:
            logger.error(f"Failed to analyze trends: {e}")
            return None

        await self.track_usage(
            data["projectId"],
            operation=AIOperation.GENERATE,
            prompt_tokens=estimate_tokens(prompt),
            completion_tokens=estimate_tokens(json.dumps(analysis)),
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="trend_analysis",
        )
        logger.info(f"Trend analysis completed for project {data['projectId']}")
        return analysis

    async def index_error(self, event: ErrorEvent) -> None:
        """Embed the event into the ``errors`` namespace for similarity search."""
        ai = self.ai
        if ai is None:
            return

        document = Document(
            id=event.id,
            content=f"Error: {event.type} - {event.message}\n{event.stack_trace or ''}",
            namespace=ERRORS_NAMESPACE,
            metadata={
                "source": f"error/{event.id}",
                "type": "error",
                "projectId": str(event.project_id),
                "timestamp": event.timestamp.isoformat(),
                "platform": event.platform,
                "environment": event.environment,
                "level": event.level,
                "errorType": event.type,
            },
        )

        start = time.monotonic()
        try:
            await ai.add_documents([document])
        except Exception as e:
            logger.error(f"Failed to index error {event.id}: {e}")
            await self.track_usage(
                event.project_id,
                operation=AIOperation.EMBED,
                prompt_tokens=estimate_tokens(document.content),
                completion_tokens=0,
                latency_ms=_elapsed_ms(start),
                success=False,
                error_message=str(e),
                feature="error_indexing",
            )
            return

        await self.track_usage(
            event.project_id,
            operation=AIOperation.EMBED,
            prompt_tokens=estimate_tokens(document.content),
            completion_tokens=0,
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="error_indexing",
        )
        logger.debug(f"Error {event.id} indexed for similarity search")

    async def find_similar_errors(self, event: ErrorEvent, limit: int = 5) -> list[dict[str, Any]]:
        """Ids and similarity scores of indexed errors resembling ``event``."""
        ai = self.ai
        if ai is None:
            return []

        query = f"{event.type}: {event.message}"
        start = time.monotonic()
        try:
            results = await ai.search(
                query,
                namespace=ERRORS_NAMESPACE,
                filters={
                    "projectId": str(event.project_id),
                    "environment": event.environment,
                },
                limit=limit,
                min_similarity=0.7,
            )
        except Exception as e:
            logger.error(f"Failed to find similar errors: {e}")
            await self.track_usage(
                event.project_id,
                operation=AIOperation.EMBED,
                prompt_tokens=estimate_tokens(query),
                completion_tokens=0,
                latency_ms=_elapsed_ms(start),
                success=False,
                error_message=str(e),
                feature="similar_errors",
            )
            return []

        await self.track_usage(
            event.project_id,
            operation=AIOperation.EMBED,
            prompt_tokens=estimate_tokens(query),
            completion_tokens=0,
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="similar_errors",
        )
        return [
            {"id": doc.id, "similarity": doc.metadata.get("similarity") or 0.8}
            for doc in results
        ]

    async def generate_suggested_fix(self, event: ErrorEvent) -> str | None:
        """A fix suggestion grounded on similar indexed errors."""
        ai = self.ai
        if ai is None:
            return None

        prompt = SUGGESTED_FIX_PROMPT.format(
            type=event.type,
            message=event.message,
            platform=event.platform,
            environment=event.environment,
        )
        fingerprint_hash = generate_error_fingerprint(event)

        start = time.monotonic()
        try:
            async with self.session_factory() as session:
                cached = await AICacheService(session).get_cached_analysis(
                    fingerprint_hash,
                    AnalysisType.SUGGESTED_FIX,
                    project_id=event.project_id,
                )
                if cached is not None:
                    logger.info(f"Suggested fix for {event.id} served from cache")
                    return json.loads(cached.analysis_result)

            response = await ai.generate_with_context(
                prompt,
                namespace=ERRORS_NAMESPACE,
                filters={"projectId": str(event.project_id), "errorType": event.type},
            )
            prompt_tokens = estimate_tokens(prompt)
            completion_tokens = estimate_tokens(response)

            async with self.session_factory() as session:
                await AICacheService(session).cache_analysis(
                    fingerprint_hash,
                    AnalysisType.SUGGESTED_FIX,
                    response,
                    provider=self.provider,
                    model=self.model,
                    prompt=prompt,
                    project_id=event.project_id,
                    error_patterns=[event.type],
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                )
        except Exception as e:
            logger.error(f"Failed to generate suggested fix: {e}")
            await self.track_usage(
                event.project_id,
                operation=AIOperation.GENERATE,
                prompt_tokens=estimate_tokens(prompt),
                completion_tokens=0,
                latency_ms=_elapsed_ms(start),
                success=False,
                error_message=str(e),
                feature="suggested_fix",
            )
            return None

        await self.track_usage(
            event.project_id,
            operation=AIOperation.GENERATE,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=_elapsed_ms(start),
            success=True,
            feature="suggested_fix",
        )
        return response

    async def track_usage(
        self,
        project_id: uuid.UUID | str,
        operation: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        success: bool,
        feature: str,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Report an AI call to the main application, billed to the project's company.

        Projects without an organization are skipped. Reporting failures are
        logged and never interrupt the caller.
        """
        try:
            async with self.session_factory() as session:
                project = await ProjectRepository(session).get_by_id(uuid.UUID(str(project_id)))

            if project is None:
                logger.warning("Project not found for AI usage tracking")
                return
            if not project.organization_id:
                logger.debug("Skipping AI usage tracking - no organization ID")
                return

            await self.main_app.request(
                "/ai-usage/record",
                "POST",
                {
                    "companyId": project.organization_id,
                    "projectId": str(project.id),
                    "appName": "monitoring",
                    "provider": self.provider,
                    "model": self.model,
                    "operation": operation,
                    "promptTokens": prompt_tokens,
                    "completionTokens": completion_tokens,
                    "latencyMs": latency_ms,
                    "success": success,
                    "errorMessage": error_message,
                    "feature": feature,
                    "metadata": {"projectName": project.name, **(metadata or {})},
                },
            )
        except Exception as e:
            logger.error(f"Failed to track AI usage: {e}")


_ai_analysis_service: AIAnalysisService | None = None


def get_ai_analysis_service() -> AIAnalysisService:
    global _ai_analysis_service
    if _ai_analysis_service is None:
        _ai_analysis_service = AIAnalysisService()
    return _ai_analysis_service
