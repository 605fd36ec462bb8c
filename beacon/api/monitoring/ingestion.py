"""Sentry-compatible event ingestion endpoints (no user authentication)."""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import get_db_session, get_process_dispatcher, get_project_repository
from beacon.core.events import ProcessEventDispatcher
from beacon.models.projects import Project
from beacon.repositories.projects import ProjectRepository
from beacon.schemas.error_events import StoreEventPayload, StoreEventResponse
from beacon.services.error_event_service import ErrorEventService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


def parse_event_body(raw: bytes) -> dict[str, Any]:
    """Decode a JSON event or the first event item of a Sentry envelope.

    Envelopes are newline-separated: an envelope header, then pairs of item
    header and item payload.

    Raises:
        ValueError: If no event object can be found.
    """
    text = raw.decode("utf-8")
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        body = None

    if isinstance(body, dict):
        return body

    lines = [line for line in text.splitlines() if line.strip()]
    for header_line, payload_line in zip(lines[1::2], lines[2::2]):
        header = json.loads(header_line)
        if not isinstance(header, dict):
            raise ValueError("Envelope item header must be an object")
        if header.get("type") in ("event", "error"):
            payload = json.loads(payload_line)
            if isinstance(payload, dict):
                return payload

    raise ValueError("Request body contains no event")


async def _ingest(
    project_key: str,
    request: Request,
    session: AsyncSession,
    projects: ProjectRepository,
    dispatcher: ProcessEventDispatcher,
) -> StoreEventResponse:
    project: Project | None = await projects.find_by_key(project_key)
    if project is None or not project.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid project ID or authentication"},
        )

    try:
        payload = parse_event_body(await request.body())
        StoreEventPayload.model_validate(payload)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "errors": jsonable_encoder(e.errors(include_url=False, include_context=False)),
            },
        ) from e
    except ValueError as e:
        logger.warning(f"Unreadable event for project {project.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid event data"},
        ) from e

    try:
        result = await ErrorEventService(session, dispatcher).store_from_payload(project.id, payload)
    except Exception as e:
        logger.error(f"Error storing event for project {project.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid event data"},
        ) from e

    return StoreEventResponse(**result)


@router.post(
    "/{project_key}/store",
    response_model=StoreEventResponse,
    summary="Store an error event",
    description="The key is the project id or its public key.",
)
async def store_event(
    project_key: str,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    projects: Annotated[ProjectRepository, Depends(get_project_repository)],
    dispatcher: Annotated[ProcessEventDispatcher, Depends(get_process_dispatcher)],
) -> StoreEventResponse:
    return await _ingest(project_key, request, session, projects, dispatcher)


@router.post(
    "/{project_key}/envelope/",
    response_model=StoreEventResponse,
    summary="Store an error event from an envelope",
)
async def store_envelope(
    project_key: str,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    projects: Annotated[ProjectRepository, Depends(get_project_repository)],
    dispatcher: Annotated[ProcessEventDispatcher, Depends(get_process_dispatcher)],
) -> StoreEventResponse:
    return await _ingest(project_key, request, session, projects, dispatcher)
