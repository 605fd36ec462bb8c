"""Error event listing and dashboard endpoints."""

import math
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from beacon.api.deps import CurrentUser, ProjectDep, get_error_event_repository
from beacon.repositories.error_events import ErrorEventRepository
from beacon.schemas.error_events import (
    DashboardResponse,
    ErrorEventResponse,
    ErrorFilters,
    ErrorListResponse,
    Pagination,
    ProjectErrorsResponse,
)

router = APIRouter(tags=["Errors"])

Events = Annotated[ErrorEventRepository, Depends(get_error_event_repository)]

DEFAULT_LEVEL_COUNTS = {"error": 0, "warning": 0, "info": 0, "debug": 0}


async def error_filters(
    level: str | None = None,
    environment: str | None = None,
    search: str | None = None,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> ErrorFilters:
    return ErrorFilters(
        level=level,
        environment=environment,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )


Filters = Annotated[ErrorFilters, Depends(error_filters)]


def _pagination(total: int, page: int, limit: int) -> Pagination:
    return Pagination(current_page=page, total_pages=math.ceil(total / limit), per_page=limit)


@router.get(
    "/errors",
    response_model=ErrorListResponse,
    summary="Error events across all projects",
)
async def all_errors(
    _: CurrentUser,
    events: Events,
    filters: Filters,
    project_id: Annotated[uuid.UUID | None, Query(alias="projectId")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ErrorListResponse:
    filters.project_id = project_id
    criteria = filters.model_dump()

    rows = await events.query(limit=limit, offset=(page - 1) * limit, **criteria)
    total = await events.count(**criteria)
    error_counts = {**DEFAULT_LEVEL_COUNTS, **await events.count_by_level(**criteria)}

    return ErrorListResponse(
        errors=[ErrorEventResponse.model_validate(row) for row in rows],
        total=total,
        pagination=_pagination(total, page, limit),
        filters=filters,
        error_counts=error_counts,
    )


@router.get(
    "/projects/{project_id}/errors",
    response_model=ProjectErrorsResponse,
    summary="Error events of a project",
)
async def project_errors(
    _: CurrentUser,
    project: ProjectDep,
    events: Events,
    filters: Filters,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ProjectErrorsResponse:
    filters.project_id = project.id
    criteria = filters.model_dump()

    rows = await events.query(limit=limit, offset=(page - 1) * limit, **criteria)
    total = await events.count(**criteria)

    return ProjectErrorsResponse(
        errors=[ErrorEventResponse.model_validate(row) for row in rows],
        total=total,
        pagination=_pagination(total, page, limit),
        filters=filters,
        event_counts=await events.get_event_counts(project.id, "day"),
        top_error_types=await events.get_top_error_types(project.id, 5),
    )


@router.get(
    "/projects/{project_id}/errors/{event_id}",
    response_model=ErrorEventResponse,
    summary="A single error event",
)
async def show_error(
    event_id: str,
    _: CurrentUser,
    project: ProjectDep,
    events: Events,
) -> ErrorEventResponse:
    event = await events.get_by_id(event_id)
    if event is None or event.project_id != project.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Error event not found"},
        )
    return ErrorEventResponse.model_validate(event)


@router.get(
    "/projects/{project_id}/dashboard",
    response_model=DashboardResponse,
    summary="Project dashboard data",
)
async def dashboard(
    _: CurrentUser,
    project: ProjectDep,
    events: Events,
) -> DashboardResponse:
    recent = await events.query(project_id=project.id, limit=10)
    return DashboardResponse(
        event_counts=await events.get_event_counts(project.id, "day"),
        top_error_types=await events.get_top_error_types(project.id, 10),
        recent_events=[ErrorEventResponse.model_validate(row) for row in recent],
        summary=await events.get_summary(project.id),
    )
