"""AI usage, limit and cost configuration schemas."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, Field

from beacon.models.ai_usage import AIUsageLimit
from beacon.schemas.common import CamelModel
from beacon.services.ai_usage_service import LimitValues, UsageData


# ============================================================
# Recording
# ============================================================


class RecordUsageRequest(CamelModel):
    """AI call reported by another application over the M2M API."""

    company_id: uuid.UUID
    user_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    app_name: str = Field(..., min_length=1, max_length=100)
    provider: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=100)
    operation: Literal["generate", "embed", "extract", "stream"]
    prompt_tokens: int = Field(..., ge=0)
    completion_tokens: int = Field(0, ge=0)
    latency_ms: int | None = Field(None, ge=0)
    success: bool | None = None
    error_message: str | None = None
    feature: str | None = Field(None, max_length=100)
    prompt: str | None = None
    completion: str | None = None
    metadata: dict[str, Any] | None = None

    def to_usage_data(self) -> UsageData:
        return UsageData(**self.model_dump())


class RecordUsageResponse(CamelModel):
    success: bool = True
    usage_id: uuid.UUID


class AIUsageResponse(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID | None
    project_id: uuid.UUID | None
    app_name: str
    provider: str
    model: str
    operation: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    prompt_cost_cents: int
    completion_cost_cents: int
    total_cost_cents: int
    prompt_cost_dollars: float
    completion_cost_dollars: float
    total_cost_dollars: float
    currency: str
    latency_ms: int | None
    cached: bool
    success: bool
    error_message: str | None
    feature: str | None
    metadata: dict[str, Any] | None = Field(
        None,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: datetime
    updated_at: datetime


# ============================================================
# Limits
# ============================================================


class UsageLimitsRequest(CamelModel):
    max_requests: int | None = Field(None, gt=0)
    max_tokens: int | None = Field(None, gt=0)
    max_cost_cents: int | None = Field(None, gt=0)
    warning_threshold_percent: int | None = Field(None, ge=1, le=100)

    def to_limit_values(self) -> LimitValues:
        return LimitValues(**self.model_dump())


class UsageLimitResponse(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    period: str
    max_requests: int | None
    max_tokens: int | None
    max_cost_cents: int | None
    current_requests: int
    current_tokens: int
    current_cost_cents: int
    period_start: datetime
    period_end: datetime
    warning_threshold_percent: int
    warning_sent: bool
    usage_percentage: dict[str, float | None] = Field(default_factory=dict)

    @classmethod
    def from_limit(cls, limit: AIUsageLimit) -> "UsageLimitResponse":
        response = cls.model_validate(limit)
        response.usage_percentage = limit.get_usage_percentage()
        return response


class CanMakeRequestResponse(CamelModel):
    allowed: bool
    reason: str | None = None
    limits: list[UsageLimitResponse] | None = None


# ============================================================
# Cost configuration
# ============================================================


class CostConfigUpdate(CamelModel):
    provider: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=100)
    operation: Literal["generate", "embed"]
    prompt_cost_per_1k_cents: float = Field(..., gt=0)
    completion_cost_per_1k_cents: float = Field(0, ge=0)


class CostConfigResponse(CamelModel):
    id: uuid.UUID
    provider: str
    model: str
    operation: str
    prompt_cost_per_1k_cents: float
    completion_cost_per_1k_cents: float
    effective_from: datetime
    effective_to: datetime | None
