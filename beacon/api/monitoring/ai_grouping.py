"""AI-assisted grouping of error events."""

import logging
import secrets
import time
import uuid
from datetime import timedelta
from typing import Annotated, Any

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
from beacon.models.error_groups import ErrorGroup, ErrorGroupStatus
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.schemas.ai import ApplyGroupingRequest, GroupSuggestion, SuggestGroupingRequest
from beacon.services.ai_analysis_service import AIAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/ai-grouping", tags=["AI Grouping"])

Events = Annotated[ErrorEventRepository, Depends(get_error_event_repository)]
Groups = Annotated[ErrorGroupRepository, Depends(get_error_group_repository)]
Analysis = Annotated[AIAnalysisService, Depends(get_ai_analysis)]

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
GROUP_SAMPLE_LIMIT = 50
RANGE_SAMPLE_LIMIT = 100


def _failure(message: str, e: Exception) -> HTTPException:
    logger.error(f"{message}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": message, "error": str(e)},
    )


def ai_fingerprint_hash() -> str:
    return f"ai-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


async def _select_events(
    project_id: uuid.UUID,
    payload: SuggestGroupingRequest,
    events: ErrorEventRepository,
    groups: ErrorGroupRepository,
) -> list[ErrorEvent]:
    if payload.error_ids:
        return list(await events.get_by_ids(payload.error_ids, project_id))

    if payload.group_id is not None:
        group = await groups.get_for_project(project_id, payload.group_id)
        if group is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"message": "Error group not found"},
            )
        return list(
            await events.query(project_id=project_id, group_id=group.id, limit=GROUP_SAMPLE_LIMIT)
        )

    since = utcnow() - TIME_RANGES[payload.time_range]
    return list(
        await events.query(project_id=project_id, start_date=since, limit=RANGE_SAMPLE_LIMIT)
    )


@router.post(
    "/suggest",
    summary="Suggest error groupings",
    description="Selects events by id, by group or by time range and asks the AI "
    "service how they should be grouped.",
)
async def suggest_grouping(
    project_id: uuid.UUID,
    payload: SuggestGroupingRequest,
    _: CurrentUser,
    events: Events,
    groups: Groups,
    ai_analysis: Analysis,
) -> dict[str, Any]:
    try:
        selected = await _select_events(project_id, payload, events, groups)
        if len(selected) < 2:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "At least 2 errors are required for grouping suggestions"},
            )

        suggestions = await ai_analysis.suggest_error_grouping(selected)
        if not suggestions:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"message": "AI service temporarily unavailable"},
            )

        by_id = {event.id: event for event in selected}
        titles = await groups.get_titles(
            list({event.group_id for event in selected if event.group_id is not None})
        )
    except (SQLAlchemyError, BeaconError) as e:
        raise _failure("Failed to generate grouping suggestions", e) from e

    enhanced = []
    for suggestion in suggestions.get("suggestedGroups", []):
        errors = [
            {
                "id": event.id,
                "message": event.message,
                "type": event.type,
                "currentGroupId": str(event.group_id) if event.group_id else None,
                "currentGroupTitle": titles.get(event.group_id),
            }
            for error_id in suggestion.get("errorIds", [])
            if (event := by_id.get(error_id)) is not None
        ]
        enhanced.append({**suggestion, "errors": errors})

    return {
        "suggestions": enhanced,
        "reasoning": suggestions.get("reasoning"),
        "totalErrors": len(selected),
    }


async def _apply_suggestion(
    project_id: uuid.UUID,
    suggestion: GroupSuggestion,
    events: ErrorEventRepository,
    groups: ErrorGroupRepository,
) -> dict[str, Any]:
    found = await events.get_by_ids(suggestion.error_ids, project_id)
    if len(found) != len(set(suggestion.error_ids)):
        return {
            "groupName": suggestion.group_name,
            "success": False,
            "error": "Some errors not found or not in this project",
        }

    now = utcnow()
    group = await groups.create(
        ErrorGroup(
            project_id=project_id,
            fingerprint_hash=ai_fingerprint_hash(),
            fingerprint=["ai-suggested", suggestion.group_name],
            title=suggestion.group_name,
            type="mixed",
            message=f"AI-suggested group: {suggestion.group_name}",
            platform="mixed",
            status=ErrorGroupStatus.UNRESOLVED,
            event_count=len(found),
            first_seen=min(event.timestamp for event in found),
            last_seen=max(event.timestamp for event in found),
            ai_summary=suggestion.group_description,
            metadata_={"aiSuggested": True, "createdBy": "ai-grouping", "createdAt": now.isoformat()},
        )
    )
    updated = await events.assign_group(suggestion.error_ids, group.id)
    logger.info(f"Applied AI grouping '{suggestion.group_name}': {updated} events moved to {group.id}")

    return {
        "groupName": suggestion.group_name,
        "groupId": str(group.id),
        "success": True,
        "errorsUpdated": updated,
    }


@router.post(
    "/apply",
    summary="Apply grouping suggestions",
    description="Creates one group per suggestion and moves its events into it.",
)
async def apply_grouping(
    project_id: uuid.UUID,
    payload: ApplyGroupingRequest,
    _: CurrentUser,
    events: Events,
    groups: Groups,
) -> dict[str, Any]:
    try:
        results = [
            await _apply_suggestion(project_id, suggestion, events, groups)
            for suggestion in payload.suggestions
        ]
    except SQLAlchemyError as e:
        raise _failure("Failed to apply grouping", e) from e

    return {"results": results, "totalGroups": len(results)}
