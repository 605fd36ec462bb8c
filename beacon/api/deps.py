"""Dependency injection for API endpoints."""

import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.config import Settings, get_settings
from beacon.core.database import async_session_factory
from beacon.core.events import (
    EventPublisher,
    ProcessEventDispatcher,
    get_dispatcher,
    get_event_publisher,
)
from beacon.core.logto import (
    LogtoAuth,
    LogtoJWTVerifier,
    check_permissions,
    derive_permissions_from_route,
)
from beacon.core.security import SecurityUtils
from beacon.exceptions import AuthenticationError, UserNotFoundError
from beacon.models.companies import Company
from beacon.models.projects import Project
from beacon.models.users import User
from beacon.repositories.companies import CompanyRepository
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.repositories.projects import ProjectRepository
from beacon.repositories.users import UserRepository
from beacon.services.ai_analysis_service import AIAnalysisService, get_ai_analysis_service
from beacon.services.ai_cache_service import AICacheService
from beacon.services.ai_cost_service import AICostService
from beacon.services.ai_usage_service import AIUsageService

# Security scheme for bearer token
security_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for request handling.

    Yields:
        AsyncSession: Database session that auto-commits on success.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_events() -> EventPublisher:
    return get_event_publisher()


def get_process_dispatcher() -> ProcessEventDispatcher:
    return get_dispatcher()


def get_ai_analysis() -> AIAnalysisService:
    """Get the monitoring AI analysis service.

    Returns:
        AIAnalysisService: The singleton analysis service.
    """
    return get_ai_analysis_service()


def get_security_utils(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SecurityUtils:
    """Get security utilities instance.

    Args:
        settings: Application settings

    Returns:
        SecurityUtils: Security utilities for JWT and password operations
    """
    return SecurityUtils(settings)


def get_user_repository(session: DbSession) -> UserRepository:
    return UserRepository(session)


def get_company_repository(session: DbSession) -> CompanyRepository:
    return CompanyRepository(session)


def get_project_repository(session: DbSession) -> ProjectRepository:
    return ProjectRepository(session)


def get_error_event_repository(session: DbSession) -> ErrorEventRepository:
    return ErrorEventRepository(session)


def get_error_group_repository(session: DbSession) -> ErrorGroupRepository:
    return ErrorGroupRepository(session)


def get_ai_cost_service(session: DbSession) -> AICostService:
    return AICostService(session)


def get_ai_cache_service(session: DbSession) -> AICacheService:
    return AICacheService(session)


def get_ai_usage_service(
    session: DbSession,
    events: Annotated[EventPublisher, Depends(get_events)],
) -> AIUsageService:
    return AIUsageService(session, events)


# ============================================================
# Local JWT authentication
# ============================================================


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
    security_utils: Annotated[SecurityUtils, Depends(get_security_utils)],
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> User:
    """Get current authenticated user (required authentication).

    Raises:
        HTTPException: 401 if not authenticated or user not found, 403 if
            the account is inactive
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = security_utils.verify_token(
            credentials.credentials,
            expected_type="access",
        )
        user = await user_repo.get_by_id(uuid.UUID(payload["sub"]))
    except (AuthenticationError, UserNotFoundError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_current_admin(current_user: CurrentUser) -> User:
    """Verify that the current user has the admin role.

    Raises:
        HTTPException: 403 if user is not an admin
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )
    return current_user


CurrentAdmin = Annotated[User, Depends(get_current_admin)]


async def get_user_company(
    current_user: CurrentUser,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> Company:
    """The company AI usage is reported for: primary membership, else the first.

    Raises:
        HTTPException: 404 if the user belongs to no company
    """
    companies = await user_repo.get_companies(current_user.id)
    if not companies:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No company found for user"},
        )
    company, _ = companies[0]
    return company


# ============================================================
# Logto (M2M) authentication
# ============================================================


def get_logto_verifier(
    settings: Annotated[Settings, Depends(get_settings)],
) -> LogtoJWTVerifier:
    return LogtoJWTVerifier(settings)


async def get_logto_auth(
    request: Request,
    verifier: Annotated[LogtoJWTVerifier, Depends(get_logto_verifier)],
) -> LogtoAuth:
    """Authenticate a Logto access token.

    Raises:
        HTTPException: 401 with ``{error: "Unauthorized", message}``
    """
    try:
        return verifier.authenticate(request.headers.get("authorization"))
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": e.message},
        ) from e


def require_permissions(*permissions: str) -> Callable:
    """Build a dependency enforcing Logto scopes.

    With no explicit permissions the requirement is derived from the route,
    e.g. ``GET /api/v1/users`` needs ``users:read`` or ``read:users``.
    """

    async def dependency(
        request: Request,
        auth: Annotated[LogtoAuth, Depends(get_logto_auth)],
    ) -> LogtoAuth:
        required = list(permissions) or derive_permissions_from_route(
            request.url.path,
            request.method,
        )
        if not check_permissions(auth, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "Forbidden",
                    "message": "Insufficient permissions",
                    "required": required,
                    "provided": auth.scopes,
                },
            )
        return auth

    return dependency


# ============================================================
# Monitoring lookups
# ============================================================


async def get_project_or_404(
    project_id: uuid.UUID,
    project_repo: Annotated[ProjectRepository, Depends(get_project_repository)],
) -> Project:
    project = await project_repo.get_by_id(project_id)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Project not found"},
        )
    return project


ProjectDep = Annotated[Project, Depends(get_project_or_404)]
