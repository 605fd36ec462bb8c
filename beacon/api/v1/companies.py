"""Company management endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from beacon.api.deps import CurrentAdmin, CurrentUser, get_company_repository, get_events
from beacon.core.events import EventPublisher
from beacon.exceptions import DuplicateCompanyError, NotFoundError
from beacon.models.companies import Company
from beacon.models.users import User
from beacon.repositories.companies import CompanyRepository
from beacon.schemas.companies import CompanyPayload, CompanyResponse, CompanyWithMembers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["Companies"])


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "Company not found"},
    )


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="The user doesn't have enough privileges",
    )


def _duplicate_name(e: DuplicateCompanyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"errors": {"name": [e.message]}},
    )


async def _get_company(repo: CompanyRepository, company_id: uuid.UUID, **kwargs) -> Company:
    company = await repo.get_by_id(company_id, **kwargs)
    if company is None:
        raise _not_found()
    return company


async def _can_view(repo: CompanyRepository, user: User, company_id: uuid.UUID) -> bool:
    if user.is_admin:
        return True
    return await repo.get_membership(company_id, user.id) is not None


async def _can_update(repo: CompanyRepository, user: User, company_id: uuid.UUID) -> bool:
    if user.is_admin:
        return True
    membership = await repo.get_membership(company_id, user.id)
    return membership is not None and membership.role == "admin"


@router.get(
    "",
    response_model=list[CompanyWithMembers],
    summary="List companies",
    description="All companies with their members. Admin only.",
)
async def list_companies(
    _: CurrentAdmin,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
) -> list[CompanyWithMembers]:
    companies = await repo.list_companies(with_members=True)
    return [CompanyWithMembers.model_validate(company) for company in companies]


@router.post(
    "",
    response_model=CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a company",
    description="The creator becomes the company's primary admin member.",
)
async def create_company(
    payload: CompanyPayload,
    current_user: CurrentUser,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> CompanyResponse:
    fields = payload.to_fields()
    try:
        company = await repo.create_company(**fields)
    except DuplicateCompanyError as e:
        raise _duplicate_name(e) from e

    await repo.attach_user(company.id, current_user.id, role="admin", is_primary=True)

    logger.info(f"Company {company.id} created by user {current_user.id}")
    await events.publish(
        "company:created",
        {"companyId": str(company.id), "userId": str(current_user.id)},
    )
    return CompanyResponse.model_validate(company)


@router.get(
    "/{company_id}",
    response_model=CompanyWithMembers,
    summary="Get a company",
    description="Visible to admins and company members.",
)
async def get_company(
    company_id: uuid.UUID,
    current_user: CurrentUser,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
) -> CompanyWithMembers:
    company = await _get_company(repo, company_id, with_members=True)
    if not await _can_view(repo, current_user, company_id):
        raise _forbidden()
    return CompanyWithMembers.model_validate(company)


@router.put(
    "/{company_id}",
    response_model=CompanyResponse,
    summary="Update a company",
    description="Allowed for admins and for members holding the company admin role.",
)
async def update_company(
    company_id: uuid.UUID,
    payload: CompanyPayload,
    current_user: CurrentUser,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> CompanyResponse:
    await _get_company(repo, company_id)
    if not await _can_update(repo, current_user, company_id):
        raise _forbidden()

    fields = {
        key: value
        for key, value in payload.to_fields().items()
        if key in payload.model_fields_set
    }
    try:
        company = await repo.update_company(company_id, **fields)
    except DuplicateCompanyError as e:
        raise _duplicate_name(e) from e
    except NotFoundError as e:
        raise _not_found() from e

    await events.publish(
        "company:updated",
        {"companyId": str(company.id), "userId": str(current_user.id)},
    )
    return CompanyResponse.model_validate(company)


@router.delete(
    "/{company_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a company",
    description="Admin only.",
)
async def delete_company(
    company_id: uuid.UUID,
    current_admin: CurrentAdmin,
    repo: Annotated[CompanyRepository, Depends(get_company_repository)],
    events: Annotated[EventPublisher, Depends(get_events)],
) -> None:
    try:
        await repo.delete_company(company_id)
    except NotFoundError as e:
        raise _not_found() from e

    logger.info(f"Company {company_id} deleted by admin {current_admin.id}")
    await events.publish("company:deleted", {"companyId": str(company_id)})
