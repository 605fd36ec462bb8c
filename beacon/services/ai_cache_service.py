"""Cache of AI analyses shared across projects.

Analyses are keyed by error fingerprint and analysis type. Entries that only
describe generic framework or runtime errors are public; anything else is
served only to the projects that already used it.
"""

import hashlib
import json
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.models.ai_cache import AIAnalysisCache
from beacon.models.base import utcnow

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("error_analysis", "suggested_fix", "similar_errors")

PUBLIC_ERROR_PATTERNS = [
    # Runtime error types
    "TypeError",
    "ReferenceError",
    "SyntaxError",
    "RangeError",
    # Common library messages
    "Cannot read property",
    "undefined is not",
    "null is not",
    # Network
    "ECONNREFUSED",
    "ETIMEDOUT",
    "connection timeout",
    # HTTP statuses
    "404",
    "500",
    "502",
    "503",
    # Frameworks
    "react",
    "vue",
    "angular",
    "express",
    "django",
    "rails",
    "laravel",
    "symfony",
    "spring",
    "fastapi",
]


def generate_prompt_hash(prompt: str) -> str:
    return hashlib.sha256(prompt.strip().lower().encode()).hexdigest()[:16]


def is_public_error(patterns: list[str]) -> bool:
    """Whether the patterns describe an error common enough to share."""
    error_string = " ".join(patterns).lower()
    return any(pattern.lower() in error_string for pattern in PUBLIC_ERROR_PATTERNS)


def _stats_bucket() -> dict[str, int]:
    return {"hits": 0, "tokensSaved": 0, "costSavedCents": 0}


class AICacheService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_cached_analysis(
        self,
        fingerprint_hash: str,
        analysis_type: str,
        project_id: uuid.UUID | str | None = None,
        respect_privacy: bool = True,
    ) -> AIAnalysisCache | None:
        """Best cached entry for the fingerprint, or None.

        A hit records the usage (count, tokens saved, consuming project).
        Lookup failures are logged and treated as a miss.
        """
        project_key = str(project_id) if project_id else None
        try:
            stmt = (
                select(AIAnalysisCache)
                .where(
                    AIAnalysisCache.fingerprint_hash == fingerprint_hash,
                    AIAnalysisCache.analysis_type == analysis_type,
                )
                .order_by(
                    AIAnalysisCache.confidence_score.desc(),
                    AIAnalysisCache.usage_count.desc(),
                )
            )
            entries = (await self.session.execute(stmt)).scalars().all()

            if respect_privacy and project_key:
                entries = [
                    entry
                    for entry in entries
                    if entry.is_public or project_key in (entry.projects_used or [])
                ]

            if not entries:
                return None

            cached = entries[0]
            await self._update_cache_usage(cached, project_key)
            return cached
        except Exception as e:
            logger.error(f"Failed to get cached analysis: {e}")
            return None

    async def _update_cache_usage(self, entry: AIAnalysisCache, project_id: str | None) -> None:
        initial_tokens = (entry.metadata_ or {}).get("initialTokens", {})
        tokens_saved = (initial_tokens.get("prompt") or 0) + (initial_tokens.get("completion") or 0)

        entry.last_used_at = utcnow()
        entry.usage_count += 1
        entry.tokens_saved += tokens_saved
        if project_id and project_id not in (entry.projects_used or []):
            entry.projects_used = [*(entry.projects_used or []), project_id]

        await self.session.commit()
        await self.session.refresh(entry)

    async def cache_analysis(
        self,
        fingerprint_hash: str,
        analysis_type: str,
        analysis: Any,
        *,
        provider: str,
        model: str,
        prompt: str,
        project_id: uuid.UUID | str,
        confidence_score: float | None = None,
        is_public: bool | None = None,
        error_patterns: list[str] | None = None,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> AIAnalysisCache:
        """Store an analysis result.

        Raises:
            Exception: Storage failures are logged and re-raised.
        """
        patterns = error_patterns or []
        public = is_public if is_public is not None else is_public_error(patterns)

        try:
            now = utcnow()
            entry = AIAnalysisCache(
                fingerprint_hash=fingerprint_hash,
                analysis_type=analysis_type,
                provider=provider,
                model=model,
                analysis_result=json.dumps(analysis, default=str),
                prompt_hash=generate_prompt_hash(prompt),
                confidence_score=0.8 if confidence_score is None else confidence_score,
                is_public=public,
                error_patterns=patterns,
                created_at=now,
                last_used_at=now,
                usage_count=1,
                projects_used=[str(project_id)],
                feedback_count=0,
                tokens_saved=0,
                cost_saved_cents=0,
                metadata_={
                    "initialTokens": {
                        "prompt": prompt_tokens,
                        "completion": completion_tokens,
                    }
                },
            )
            self.session.add(entry)
            await self.session.commit()
            await self.session.refresh(entry)
        except Exception as e:
            logger.error(f"Failed to cache analysis {fingerprint_hash} ({analysis_type}): {e}")
            await self.session.rollback()
            raise

        logger.info(
            f"AI analysis cached: {fingerprint_hash} ({analysis_type}, public={public})"
        )
        return entry

    async def get_cache_stats(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Hits and savings, overall and by analysis type and provider."""
        stmt = select(AIAnalysisCache)
        if start_date and end_date:
            stmt = stmt.where(
                AIAnalysisCache.last_used_at >= start_date,
                AIAnalysisCache.last_used_at <= end_date,
            )
        entries = (await self.session.execute(stmt)).scalars().all()

        by_type: dict[str, dict[str, int]] = defaultdict(_stats_bucket)
        by_provider: dict[str, dict[str, int]] = defaultdict(_stats_bucket)
        totals = _stats_bucket()

        for entry in entries:
            hits = entry.usage_count - 1
            for bucket in (totals, by_type[entry.analysis_type], by_provider[entry.provider]):
                bucket["hits"] += hits
                bucket["tokensSaved"] += entry.tokens_saved
                bucket["costSavedCents"] += entry.cost_saved_cents

        return {
            "totalCacheHits": totals["hits"],
            "totalTokensSaved": totals["tokensSaved"],
            "totalCostSavedCents": totals["costSavedCents"],
            "byAnalysisType": dict(by_type),
            "byProvider": dict(by_provider),
        }

    async def submit_feedback(self, fingerprint_hash: str, analysis_type: str, score: float) -> int:
        """Fold ``score`` into the running feedback average.

        Returns:
            Number of entries updated.
        """
        stmt = select(AIAnalysisCache).where(
            AIAnalysisCache.fingerprint_hash == fingerprint_hash,
            AIAnalysisCache.analysis_type == analysis_type,
        )
        entries = (await self.session.execute(stmt)).scalars().all()

        for entry in entries:
            previous = entry.avg_feedback_score or 0
            entry.avg_feedback_score = (previous * entry.feedback_count + score) / (
                entry.feedback_count + 1
            )
            entry.feedback_count += 1

        await self.session.commit()
        return len(entries)
