"""Schemas for the monitoring AI routes."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, Field

from beacon.schemas.common import CamelModel


class CacheFeedbackRequest(CamelModel):
    """Range checks happen in the route so the rule messages can be returned."""

    score: float | None = None


class GroupAnalysisRequest(CamelModel):
    group_ids: list[uuid.UUID] = Field(default_factory=list)
    include_stats: bool = False


class SuggestGroupingRequest(CamelModel):
    error_ids: list[str] | None = None
    group_id: uuid.UUID | None = None
    time_range: Literal["1h", "24h", "7d", "30d"] = "24h"


class GroupSuggestion(CamelModel):
    group_name: str = Field(..., min_length=1, max_length=200)
    group_description: str | None = None
    error_ids: list[str] = Field(..., min_length=1)


class ApplyGroupingRequest(CamelModel):
    suggestions: list[GroupSuggestion] = Field(..., min_length=1)


class CachedAnalysisResponse(CamelModel):
    id: uuid.UUID
    fingerprint_hash: str
    analysis_type: str
    provider: str
    model: str
    analysis_result: str
    prompt_hash: str
    confidence_score: float
    is_public: bool
    error_patterns: list[str]
    usage_count: int
    tokens_saved: int
    cost_saved_cents: int
    avg_feedback_score: float | None
    feedback_count: int
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: datetime
    last_used_at: datetime
