"""Error event ingestion and listing schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from beacon.schemas.common import CamelModel


# ============================================================
# Ingestion (Sentry-compatible, snake_case on the wire)
# ============================================================


class ExceptionValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    value: str
    module: str | None = None
    stacktrace: dict[str, Any] | None = None


class ExceptionPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    values: list[ExceptionValue] | None = None


class SdkInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    version: str | None = None


class StoreEventPayload(BaseModel):
    """Body accepted by the ``/store`` and ``/envelope`` routes.

    Only the shape is checked here; the raw body is what gets stored.
    """

    model_config = ConfigDict(extra="allow")

    platform: str
    event_id: str | None = None
    timestamp: str | float | None = None
    level: str | None = None
    message: str | None = None
    logger: str | None = None
    transaction: str | None = None
    server_name: str | None = None
    release: str | None = None
    environment: str | None = None
    tags: dict[str, Any] | None = None
    modules: dict[str, Any] | None = None
    extra: dict[str, Any] | None = None
    fingerprint: list[str] | None = None
    user: dict[str, Any] | None = None
    breadcrumbs: list[dict[str, Any]] | None = None
    contexts: dict[str, Any] | None = None
    request: dict[str, Any] | None = None
    sdk: SdkInfo | None = None
    exception: ExceptionPayload | None = None


class StoreEventResponse(BaseModel):
    id: str


# ============================================================
# Listing
# ============================================================


class ErrorEventResponse(CamelModel):
    id: str
    project_id: uuid.UUID
    group_id: uuid.UUID | None
    timestamp: datetime
    received_at: datetime
    level: str
    message: str
    type: str
    platform: str
    release: str | None
    environment: str
    server_name: str | None
    transaction: str | None
    url: str | None
    method: str | None
    status_code: int | None
    user_hash: str | None
    exception_type: str | None
    exception_value: str | None
    stack_trace: str | None
    frames_count: int
    tags: dict[str, Any] | None
    extra: dict[str, Any] | None
    contexts: dict[str, Any] | None
    breadcrumbs: list[Any] | None
    request: dict[str, Any] | None
    fingerprint: list[str]


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    per_page: int


class ErrorFilters(CamelModel):
    level: str | None = None
    environment: str | None = None
    search: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    project_id: uuid.UUID | None = None


class ErrorListResponse(CamelModel):
    errors: list[ErrorEventResponse]
    total: int
    pagination: Pagination
    filters: ErrorFilters
    error_counts: dict[str, int] = Field(default_factory=dict)


class ProjectErrorsResponse(CamelModel):
    errors: list[ErrorEventResponse]
    total: int
    pagination: Pagination
    filters: ErrorFilters
    event_counts: list[dict[str, Any]]
    top_error_types: list[dict[str, Any]]


class DashboardResponse(CamelModel):
    event_counts: list[dict[str, Any]]
    top_error_types: list[dict[str, Any]]
    recent_events: list[ErrorEventResponse]
    summary: dict[str, Any]
