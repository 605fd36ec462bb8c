"""Monitoring project endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from beacon.api.deps import (
    CurrentUser,
    ProjectDep,
    get_error_event_repository,
    get_error_group_repository,
    get_project_repository,
)
from beacon.exceptions import DuplicateError, ProjectNotFoundError
from beacon.models.base import utcnow
from beacon.models.error_groups import ErrorGroupStatus
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.repositories.projects import ProjectRepository
from beacon.schemas.projects import (
    ProjectCreate,
    ProjectResponse,
    ProjectStats,
    ProjectUpdate,
    ProjectWithStats,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])

Projects = Annotated[ProjectRepository, Depends(get_project_repository)]


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "Project not found"},
    )


def _duplicate(e: DuplicateError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"errors": {e.field or "slug": [e.message]}},
    )


@router.get(
    "",
    response_model=list[ProjectResponse],
    summary="List projects",
)
async def list_projects(_: CurrentUser, projects: Projects) -> list[ProjectResponse]:
    return [ProjectResponse.model_validate(project) for project in await projects.list_projects()]


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    description="Generates the project's public and secret keys and its DSN.",
)
async def create_project(
    payload: ProjectCreate,
    current_user: CurrentUser,
    projects: Projects,
) -> ProjectResponse:
    try:
        project = await projects.create_project(**payload.model_dump())
    except DuplicateError as e:
        raise _duplicate(e) from e

    logger.info(f"Project {project.slug} created by user {current_user.id}")
    return ProjectResponse.model_validate(project)


@router.get(
    "/{project_id}",
    response_model=ProjectWithStats,
    summary="Get a project",
    description="Project details with error totals.",
)
async def get_project(
    _: CurrentUser,
    project: ProjectDep,
    events: Annotated[ErrorEventRepository, Depends(get_error_event_repository)],
    groups: Annotated[ErrorGroupRepository, Depends(get_error_group_repository)],
) -> ProjectWithStats:
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    stats = ProjectStats(
        total_errors=await events.count(project_id=project.id),
        today_errors=await events.count(project_id=project.id, start_date=today),
        resolved_errors=await groups.count_by_status(project.id, ErrorGroupStatus.RESOLVED),
    )
    return ProjectWithStats(
        **ProjectResponse.model_validate(project).model_dump(),
        stats=stats,
    )


@router.put(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update a project",
)
async def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    _: CurrentUser,
    projects: Projects,
) -> ProjectResponse:
    try:
        project = await projects.update_project(
            project_id,
            **payload.model_dump(exclude_unset=True),
        )
    except ProjectNotFoundError as e:
        raise _not_found() from e
    except DuplicateError as e:
        raise _duplicate(e) from e

    return ProjectResponse.model_validate(project)


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project",
)
async def delete_project(
    project_id: uuid.UUID,
    current_user: CurrentUser,
    projects: Projects,
) -> None:
    try:
        await projects.delete_project(project_id)
    except ProjectNotFoundError as e:
        raise _not_found() from e

    logger.info(f"Project {project_id} deleted by user {current_user.id}")
