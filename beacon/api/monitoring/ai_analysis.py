"""AI analysis endpoints for error events, error groups and project trends."""

import logging
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from beacon.api.deps import (
    CurrentUser,
    get_ai_analysis,
    get_error_event_repository,
    get_error_group_repository,
)
from beacon.exceptions import BeaconError
from beacon.models.base import utcnow
from beacon.models.error_events import ErrorEvent
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.schemas.ai import GroupAnalysisRequest
from beacon.services.ai_analysis_service import AIAnalysisService
from beacon.services.error_processing_service import REANALYSIS_INTERVAL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}", tags=["AI Analysis"])

Events = Annotated[ErrorEventRepository, Depends(get_error_event_repository)]
Groups = Annotated[ErrorGroupRepository, Depends(get_error_group_repository)]
Analysis = Annotated[AIAnalysisService, Depends(get_ai_analysis)]

MAX_BATCH_GROUPS = 20

TREND_BUCKETS = {"1d": "hour", "7d": "day", "30d": "week"}


def _failure(message: str, e: Exception) -> HTTPException:
    logger.error(f"{message}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": message},
    )


async def _get_event(events: ErrorEventRepository, project_id: uuid.UUID, error_id: str) -> ErrorEvent:
    event = await events.get_by_id(error_id)
    if event is None or event.project_id != project_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Error event not found"},
        )
    return event


def _statistics(stats: dict[str, int]) -> dict[str, int]:
    return {
        "totalEvents": stats["count"],
        "uniqueUsers": stats["uniqueUsers"],
        "last24h": stats["last24h"],
        "last7d": stats["last7d"],
        "last30d": stats["last30d"],
    }


def change_percent(current: int, previous: int) -> str | int:
    """Hour-over-hour change as a two-decimal string, or 0 without a baseline."""
    if previous > 0:
        return f"{(current - previous) / previous * 100:.2f}"
    return 0


def _analysis_is_stale(last_analysis: str | None) -> bool:
    if not last_analysis:
        return True
    analyzed_at = datetime.fromisoformat(last_analysis.replace("Z", "+00:00"))
    return utcnow() - analyzed_at > REANALYSIS_INTERVAL


# ============================================================
# Error events
# ============================================================


@router.post(
    "/errors/{error_id}/analyze",
    summary="Analyze an error event",
)
async def analyze_error(
    project_id: uuid.UUID,
    error_id: str,
    _: CurrentUser,
    events: Events,
    ai_analysis: Analysis,
) -> dict[str, Any]:
    try:
        event = await _get_event(events, project_id, error_id)
        analysis = await ai_analysis.analyze_error(event)
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to analyze error", e) from e

    if not analysis:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "AI service not available"},
        )
    return {"success": True, "analysis": analysis}


@router.get(
    "/errors/{error_id}/similar",
    summary="Find similar errors",
)
async def find_similar(
    project_id: uuid.UUID,
    error_id: str,
    _: CurrentUser,
    events: Events,
    ai_analysis: Analysis,
) -> dict[str, Any]:
    try:
        event = await _get_event(events, project_id, error_id)
        similar = await ai_analysis.find_similar_errors(event)
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to find similar errors", e) from e

    return {"success": True, "similarErrors": similar}


@router.post(
    "/errors/{error_id}/suggest-fix",
    summary="Suggest a fix for an error event",
)
async def suggest_fix(
    project_id: uuid.UUID,
    error_id: str,
    _: CurrentUser,
    events: Events,
    ai_analysis: Analysis,
) -> dict[str, Any]:
    try:
        event = await _get_event(events, project_id, error_id)
        fix = await ai_analysis.generate_suggested_fix(event)
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to generate fix suggestion", e) from e

    if not fix:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Could not generate fix suggestion"},
        )
    return {"success": True, "suggestedFix": {"description": fix, "confidence": 0.85}}


# ============================================================
# Error groups
# ============================================================


@router.get(
    "/groups/{group_id}/ai-analysis",
    summary="AI analysis of an error group",
    description="Re-analyzes the group when forced, never analyzed, or analyzed "
    "more than 7 days ago.",
)
async def get_group_analysis(
    project_id: uuid.UUID,
    group_id: uuid.UUID,
    _: CurrentUser,
    events: Events,
    groups: Groups,
    ai_analysis: Analysis,
    refresh: bool = False,
) -> dict[str, Any]:
    group = await groups.get_for_project(project_id, group_id)
    if group is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Error group not found"},
        )

    try:
        metadata = group.metadata_ or {}
        if refresh or not group.ai_summary or _analysis_is_stale(metadata.get("lastAnalysisDate")):
            sample = await events.query(project_id=project_id, group_id=group.id, limit=1)
            analysis = await ai_analysis.analyze_error(sample[0]) if sample else None
            if analysis:
                group.ai_summary = analysis.get("summary")
                group.metadata_ = {
                    **metadata,
                    "aiAnalysis": analysis,
                    "lastAnalysisDate": utcnow().isoformat(),
                }
                group = await groups.save(group)

        stats = await events.get_group_statistics(group.id)
        recent = await events.get_recent_group_stats(group.id, 60)
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to get group analysis", e) from e

    metadata = group.metadata_ or {}
    return {
        "success": True,
        "aiSummary": group.ai_summary,
        "aiAnalysis": metadata.get("aiAnalysis"),
        "lastAnalysisDate": metadata.get("lastAnalysisDate"),
        "statistics": {
            **_statistics(stats),
            "recentTrend": {
                "current": recent["current"],
                "previous": recent["previous"],
                "changePercent": change_percent(recent["current"], recent["previous"]),
            },
        },
    }


@router.post(
    "/groups/ai-analysis",
    summary="AI analysis of several error groups",
)
async def get_groups_analysis(
    project_id: uuid.UUID,
    payload: GroupAnalysisRequest,
    _: CurrentUser,
    events: Events,
    groups: Groups,
) -> dict[str, Any]:
    if not payload.group_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "groupIds array is required"},
        )
    if len(payload.group_ids) > MAX_BATCH_GROUPS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": f"Maximum {MAX_BATCH_GROUPS} groups can be analyzed at once"},
        )

    try:
        results = []
        for group in await groups.list_for_project(project_id, payload.group_ids):
            metadata = group.metadata_ or {}
            result: dict[str, Any] = {
                "groupId": str(group.id),
                "title": group.title,
                "aiSummary": group.ai_summary,
                "aiAnalysis": metadata.get("aiAnalysis"),
                "lastAnalysisDate": metadata.get("lastAnalysisDate"),
            }
            if payload.include_stats:
                result["statistics"] = _statistics(await events.get_group_statistics(group.id))
            results.append(result)
    except SQLAlchemyError as e:
        raise _failure("Failed to get groups analysis", e) from e

    return {
        "success": True,
        "groups": results,
        "groupsNeedingAnalysis": [r["groupId"] for r in results if not r["aiSummary"]],
        "totalGroups": len(results),
    }


# ============================================================
# Trends
# ============================================================


@router.get(
    "/ai/trends",
    summary="AI trend analysis for a project",
)
async def get_project_trends(
    project_id: uuid.UUID,
    _: CurrentUser,
    events: Events,
    ai_analysis: Analysis,
    period: Literal["1d", "7d", "30d"] = "7d",
) -> dict[str, Any]:
    try:
        trends = await events.get_event_counts(project_id, TREND_BUCKETS[period])
        top_errors = await events.get_top_error_types(project_id, 10)
        analysis = await ai_analysis.analyze_trends(
            {
                "projectId": project_id,
                "trends": trends,
                "topErrors": top_errors,
                "period": period,
            }
        )
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to get project trends", e) from e

    return {
        "success": True,
        "period": period,
        "trends": trends,
        "topErrors": top_errors,
        "aiAnalysis": analysis,
        "generatedAt": utcnow().isoformat(),
    }
