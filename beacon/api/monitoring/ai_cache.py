"""AI analysis cache endpoints: savings statistics, lookups and feedback."""

import json
import logging
from datetime import datetime, timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from beacon.api.deps import CurrentUser, ProjectDep, get_ai_cache_service
from beacon.models.base import utcnow
from beacon.schemas.ai import CacheFeedbackRequest, CachedAnalysisResponse
from beacon.services.ai_cache_service import ANALYSIS_TYPES, AICacheService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["AI Cache"])

Cache = Annotated[AICacheService, Depends(get_ai_cache_service)]

MIN_SCORE = 1
MAX_SCORE = 5


def _rule_error(field: str, rule: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"messages": [{"field": field, "rule": rule, "message": message}]},
    )


def validate_analysis_type(analysis_type: str) -> str:
    if analysis_type not in ANALYSIS_TYPES:
        raise _rule_error(
            "analysisType",
            "enum",
            f"analysisType must be one of: {', '.join(ANALYSIS_TYPES)}",
        )
    return analysis_type


def validate_score(score: float | None) -> float:
    if score is None:
        raise _rule_error("score", "required", "Score is required")
    if score < MIN_SCORE:
        raise _rule_error("score", "min", f"Score must be at least {MIN_SCORE}")
    if score > MAX_SCORE:
        raise _rule_error("score", "max", f"Score must be at most {MAX_SCORE}")
    return score


@router.get(
    "/ai-cache/stats",
    summary="AI cache savings",
    description="Cache hits and estimated savings. Defaults to the last 30 days.",
)
async def get_cache_stats(
    _: CurrentUser,
    cache: Cache,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> dict[str, Any]:
    end = end_date or utcnow()
    start = start_date or end - timedelta(days=30)

    try:
        stats = await cache.get_cache_stats(start, end)
    except SQLAlchemyError as e:
        logger.error(f"Failed to get cache stats: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to get cache stats"},
        ) from e

    return {
        **stats,
        "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "savings": {
            "estimatedCostSavedDollars": f"{stats['totalCostSavedCents'] / 100:.2f}",
            "apiCallsSaved": stats["totalCacheHits"],
        },
    }


@router.get(
    "/projects/{project_id}/ai-cache/{fingerprint_hash}/{analysis_type}",
    summary="Get a cached analysis",
)
async def get_cached_analysis(
    fingerprint_hash: str,
    analysis_type: str,
    _: CurrentUser,
    project: ProjectDep,
    cache: Cache,
) -> dict[str, Any]:
    validate_analysis_type(analysis_type)

    cached = await cache.get_cached_analysis(fingerprint_hash, analysis_type, project.id)
    if cached is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No cached analysis found"},
        )

    return {
        "cached": CachedAnalysisResponse.model_validate(cached).model_dump(by_alias=True, mode="json"),
        "analysis": json.loads(cached.analysis_result),
    }


@router.post(
    "/ai-cache/{fingerprint_hash}/{analysis_type}/feedback",
    summary="Rate a cached analysis",
    description="Scores from 1 to 5 are folded into the entry's running average.",
)
async def submit_feedback(
    fingerprint_hash: str,
    analysis_type: str,
    payload: CacheFeedbackRequest,
    _: CurrentUser,
    cache: Cache,
) -> dict[str, bool]:
    validate_analysis_type(analysis_type)
    score = validate_score(payload.score)

    try:
        updated = await cache.submit_feedback(fingerprint_hash, analysis_type, score)
    except SQLAlchemyError as e:
        logger.error(f"Failed to submit feedback: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to submit feedback"},
        ) from e

    logger.info(f"Feedback {score} recorded on {updated} cache entries for {fingerprint_hash}")
    return {"success": True}
