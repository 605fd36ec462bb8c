"""AI usage reporting, limits and pricing endpoints."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from beacon.api.deps import (
    CurrentAdmin,
    get_ai_cost_service,
    get_ai_usage_service,
    get_company_repository,
    get_user_company,
    require_permissions,
)
from beacon.core.logto import LogtoAuth
from beacon.models.base import utcnow
from beacon.models.companies import Company
from beacon.repositories.companies import CompanyRepository
from beacon.schemas.ai_usage import (
    AIUsageResponse,
    CanMakeRequestResponse,
    CostConfigResponse,
    CostConfigUpdate,
    RecordUsageRequest,
    RecordUsageResponse,
    UsageLimitResponse,
    UsageLimitsRequest,
)
from beacon.services.ai_cost_service import AICostService
from beacon.services.ai_usage_service import AIUsageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-usage", tags=["AI Usage"])

UserCompany = Annotated[Company, Depends(get_user_company)]
UsageService = Annotated[AIUsageService, Depends(get_ai_usage_service)]
CostService = Annotated[AICostService, Depends(get_ai_cost_service)]

DEFAULT_SUMMARY_DAYS = 30


@router.get(
    "",
    summary="AI usage summary",
    description="Totals, breakdowns and daily timeline for the user's company. "
    "Defaults to the last 30 days.",
)
async def get_usage_summary(
    company: UserCompany,
    usage_service: UsageService,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> dict[str, Any]:
    end_date = end_date or utcnow()
    start_date = start_date or end_date - timedelta(days=DEFAULT_SUMMARY_DAYS)
    return await usage_service.get_usage_summary(company.id, start_date, end_date)


@router.get(
    "/can-make-request",
    response_model=CanMakeRequestResponse,
    response_model_exclude_none=True,
    summary="Check AI usage limits",
)
async def can_make_request(
    company: UserCompany,
    usage_service: UsageService,
) -> CanMakeRequestResponse:
    result = await usage_service.can_make_request(company.id)
    return CanMakeRequestResponse(
        allowed=result["allowed"],
        reason=result.get("reason"),
        limits=[UsageLimitResponse.from_limit(limit) for limit in result.get("limits", [])]
        or None,
    )


@router.get(
    "/limits",
    response_model=list[UsageLimitResponse],
    summary="Active usage limits",
)
async def get_limits(
    company: UserCompany,
    usage_service: UsageService,
) -> list[UsageLimitResponse]:
    limits = await usage_service.get_active_limits(company.id)
    return [UsageLimitResponse.from_limit(limit) for limit in limits]


@router.post(
    "/limits/{period}",
    response_model=UsageLimitResponse,
    summary="Set usage limits",
    description="Create or update the company's limit for a daily, weekly or monthly period.",
)
async def set_limits(
    period: Literal["daily", "weekly", "monthly"],
    payload: UsageLimitsRequest,
    company: UserCompany,
    usage_service: UsageService,
) -> UsageLimitResponse:
    limit = await usage_service.set_usage_limits(company.id, period, payload.to_limit_values())
    return UsageLimitResponse.from_limit(limit)


@router.get(
    "/costs",
    response_model=list[CostConfigResponse],
    summary="Active cost configuration",
)
async def get_costs(
    _: CurrentAdmin,
    cost_service: CostService,
) -> list[CostConfigResponse]:
    configs = await cost_service.get_active_costs()
    return [CostConfigResponse.model_validate(config) for config in configs]


@router.put(
    "/costs",
    response_model=CostConfigResponse,
    summary="Update a model's pricing",
    description="Closes the current rate and starts a new one from now.",
)
async def update_cost(
    payload: CostConfigUpdate,
    _: CurrentAdmin,
    cost_service: CostService,
) -> CostConfigResponse:
    config = await cost_service.update_cost_config(**payload.model_dump())
    return CostConfigResponse.model_validate(config)


@router.post(
    "/record",
    response_model=RecordUsageResponse,
    summary="Record AI usage",
    description="Called by other applications with a Logto M2M token.",
)
async def record_usage(
    payload: RecordUsageRequest,
    auth: Annotated[LogtoAuth, Depends(require_permissions("write:ai_usage"))],
    usage_service: UsageService,
    company_repo: Annotated[CompanyRepository, Depends(get_company_repository)],
) -> RecordUsageResponse:
    if await company_repo.get_by_id(payload.company_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Company not found"},
        )

    usage = await usage_service.record_usage(payload.to_usage_data())
    logger.info(f"Recorded AI usage {usage.id} for {payload.app_name} (client {auth.user_id})")
    return RecordUsageResponse(usage_id=usage.id)


@router.get(
    "/{usage_id}",
    response_model=AIUsageResponse,
    summary="Get a usage record",
)
async def get_usage(
    usage_id: uuid.UUID,
    company: UserCompany,
    usage_service: UsageService,
) -> AIUsageResponse:
    usage = await usage_service.get_usage(usage_id, company.id)
    if usage is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "AI usage record not found"},
        )
    return AIUsageResponse.model_validate(usage)
