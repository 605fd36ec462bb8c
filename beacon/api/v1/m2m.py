"""Machine-to-machine API for other services (Logto access tokens)."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from beacon.api.deps import get_company_repository, get_user_repository, require_permissions
from beacon.core.logto import LogtoAuth
from beacon.repositories.companies import CompanyRepository
from beacon.repositories.users import UserRepository
from beacon.schemas.companies import CompanyResponse, M2MCompanyList, M2MCompanySummary
from beacon.schemas.users import M2MUserCompany, M2MUserDetail, M2MUserSummary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["M2M"])

RouteAuth = Annotated[LogtoAuth, Depends(require_permissions())]


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _user_not_found(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "User not found", "message": message},
    )


@router.get(
    "/users",
    response_model=list[M2MUserSummary],
    summary="List users",
)
async def list_users(
    _: RouteAuth,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> list[M2MUserSummary]:
    users = await user_repo.list_users(limit=1000)
    return [M2MUserSummary.model_validate(user) for user in users]


@router.get(
    "/users/external/{external_id}",
    response_model=M2MUserDetail,
    summary="Get a user by Logto id",
)
async def get_user_by_external_id(
    external_id: str,
    _: RouteAuth,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> M2MUserDetail:
    user = await user_repo.get_by_external_id(external_id)
    if user is None:
        raise _user_not_found(f"No user found with external ID: {external_id}")
    return M2MUserDetail.model_validate(user)


@router.get(
    "/users/{user_id}",
    response_model=M2MUserDetail,
    summary="Get a user",
    description="A UUID is looked up by id, anything else by external id.",
)
async def get_user(
    user_id: str,
    _: RouteAuth,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> M2MUserDetail:
    if _is_uuid(user_id):
        user = await user_repo.get_by_id(uuid.UUID(user_id))
        if user is None:
            raise _user_not_found(f"User with UUID {user_id} not found")
    else:
        user = await user_repo.get_by_external_id(user_id)
        if user is None:
            raise _user_not_found(
                f"User with external ID {user_id} not found. "
                f"Use the /api/v1/users/external/{user_id} endpoint for external IDs."
            )
    return M2MUserDetail.model_validate(user)


@router.get(
    "/users/{user_id}/companies",
    response_model=list[M2MUserCompany],
    summary="Companies of a user",
)
async def get_user_companies(
    user_id: str,
    _: RouteAuth,
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> list[M2MUserCompany]:
    user = await user_repo.get_by_id_or_external_id(user_id)
    if user is None:
        raise _user_not_found(f"No user found with ID or external ID: {user_id}")

    return [
        M2MUserCompany(
            id=company.id,
            name=company.name,
            is_primary=membership.is_primary,
            created_at=company.created_at,
            updated_at=company.updated_at,
        )
        for company, membership in await user_repo.get_companies(user.id)
    ]


@router.get(
    "/companies",
    response_model=M2MCompanyList,
    summary="List companies",
)
async def list_companies(
    _: RouteAuth,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
) -> M2MCompanyList:
    companies = await repo.list_companies()
    return M2MCompanyList(
        companies=[M2MCompanySummary.model_validate(company) for company in companies]
    )


@router.get(
    "/companies/{company_id}",
    response_model=CompanyResponse,
    summary="Get a company",
)
async def get_company(
    company_id: uuid.UUID,
    _: RouteAuth,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
) -> CompanyResponse:
    company = await repo.get_by_id(company_id)
    if company is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Company not found"},
        )
    return CompanyResponse.model_validate(company)
