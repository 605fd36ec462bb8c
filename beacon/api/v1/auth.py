"""Authentication endpoints for user registration, login, and token management."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from beacon.api.deps import (
    CurrentUser,
    get_events,
    get_security_utils,
    get_user_repository,
)
from beacon.core.events import EventPublisher
from beacon.core.security import SecurityUtils
from beacon.exceptions import AuthenticationError, DuplicateUserError
from beacon.models.users import UserRole
from beacon.repositories.users import UserRepository
from beacon.schemas.users import (
    TokenRefresh,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
    UserUpdate,
    UserWithTokens,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserWithTokens,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="""
    Register a new user with email and password.

    Requirements:
    - Email: valid email address (required)
    - Password: minimum 8 characters, must contain uppercase, lowercase, and digit
    - Full name: required
    - Username: optional, 3 to 128 characters

    Returns user data with access and refresh tokens.
    """,
)
async def register(
    user_data: UserRegister,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    security_utils: Annotated[SecurityUtils, Depends(get_security_utils)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> UserWithTokens:
    """Register a new user and return tokens."""
    try:
        user = await user_repo.create_user(
            email=user_data.email,
            hashed_password=security_utils.hash_password(user_data.password),
            full_name=user_data.full_name,
            username=user_data.username,
            role=UserRole.USER,
        )
    except DuplicateUserError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        ) from e

    logger.info(f"User registered: {user.id}")
    await events.publish(
        "user:created",
        {"userId": str(user.id), "email": user.email, "source": "registration"},
    )

    tokens = security_utils.create_token_pair(str(user.id))
    return UserWithTokens(
        **UserResponse.model_validate(user).model_dump(),
        tokens=TokenResponse(**tokens),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login user",
    description="""
    Authenticate user with email and password.

    Returns access and refresh tokens on successful authentication.
    """,
)
async def login(
    credentials: UserLogin,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    security_utils: Annotated[SecurityUtils, Depends(get_security_utils)],
) -> TokenResponse:
    """Login user and return tokens."""
    user = await user_repo.get_by_email(credentials.email)

    if not user or not security_utils.verify_password(credentials.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    return TokenResponse(**security_utils.create_token_pair(str(user.id)))


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
    description="""
    Use a refresh token to obtain a new token pair.

    Refresh tokens live longer than access tokens, allowing users to stay
    logged in without re-entering credentials.
    """,
)
async def refresh_token(
    token_data: TokenRefresh,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    security_utils: Annotated[SecurityUtils, Depends(get_security_utils)],
) -> TokenResponse:
    """Refresh access token using refresh token."""
    try:
        payload = security_utils.verify_token(
            token_data.refresh_token,
            expected_type="refresh",
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid refresh token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = await user_repo.get_by_id(uuid.UUID(payload["sub"]))
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return TokenResponse(**security_utils.create_token_pair(str(user.id)))


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
    description="Get the profile of the currently authenticated user.",
)
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update current user",
    description="""
    Update the profile of the currently authenticated user.

    Can update: full_name, username, primary_phone, password.
    Only provided fields are updated.
    """,
)
async def update_me(
    user_update: UserUpdate,
    current_user: CurrentUser,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
    security_utils: Annotated[SecurityUtils, Depends(get_security_utils)],
) -> UserResponse:
    """Update current user profile."""
    update_data = user_update.model_dump(exclude_unset=True)

    if "password" in update_data:
        update_data["hashed_password"] = security_utils.hash_password(
            update_data.pop("password")
        )

    updated_user = await user_repo.update_user(current_user.id, **update_data)
    return UserResponse.model_validate(updated_user)
