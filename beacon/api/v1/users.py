"""Admin user management endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from beacon.api.deps import CurrentAdmin, CurrentUser, get_events, get_user_repository
from beacon.core.events import EventPublisher
from beacon.exceptions import DuplicateUserError, UserNotFoundError
from beacon.repositories.users import UserRepository
from beacon.schemas.users import AdminUserPayload, AdminUserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

SOURCE = "admin_panel"


def _duplicate(e: DuplicateUserError) -> HTTPException:
    field = e.field or "email"
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"errors": {field: [e.message]}},
    )


@router.get(
    "",
    response_model=list[AdminUserResponse],
    summary="List users",
    description="All users, newest first. Admin only.",
)
async def list_users(
    _: CurrentAdmin,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    skip: int = 0,
    limit: int = 100,
) -> list[AdminUserResponse]:
    users = await user_repo.list_users(skip=skip, limit=limit)
    return [AdminUserResponse.model_validate(user) for user in users]


@router.post(
    "",
    response_model=AdminUserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    description="Create a user without a local password. Admin only.",
)
async def create_user(
    payload: AdminUserPayload,
    _: CurrentAdmin,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> AdminUserResponse:
    try:
        user = await user_repo.create_user(**payload.model_dump())
    except DuplicateUserError as e:
        raise _duplicate(e) from e

    logger.info(f"Admin created user {user.id}")
    await events.publish(
        "user:created",
        {"userId": str(user.id), "email": user.email, "source": SOURCE},
    )
    return AdminUserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=AdminUserResponse,
    summary="Update a user",
    description="Allowed for admins and for the user themselves.",
)
async def update_user(
    user_id: uuid.UUID,
    payload: AdminUserPayload,
    current_user: CurrentUser,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> AdminUserResponse:
    if not current_user.is_admin and current_user.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )

    fields = payload.model_dump(exclude_unset=True)
    if not current_user.is_admin:
        # Only admins may change roles
        fields.pop("role", None)

    try:
        user = await user_repo.update_user(user_id, **fields)
    except UserNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "User not found"},
        ) from e
    except DuplicateUserError as e:
        raise _duplicate(e) from e

    await events.publish(
        "user:updated",
        {"userId": str(user.id), "email": user.email, "source": SOURCE},
    )
    return AdminUserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user",
    description="Admin only; admins cannot delete their own account.",
)
async def delete_user(
    user_id: uuid.UUID,
    current_admin: CurrentAdmin,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> None:
    if current_admin.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot delete your own account",
        )

    try:
        await user_repo.delete_user(user_id)
    except UserNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "User not found"},
        ) from e

    logger.info(f"Admin {current_admin.id} deleted user {user_id}")
    await events.publish("user:deleted", {"userId": str(user_id)})
