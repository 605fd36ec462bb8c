"""Monitoring project schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from beacon.schemas.common import CamelModel

SLUG_PATTERN = r"^[a-z0-9-]+$"

_TRIMMED = ("name", "slug", "platform", "description", "organization_id", "team_id")


class ProjectCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=255)
    slug: str = Field(..., min_length=3, max_length=100, pattern=SLUG_PATTERN)
    platform: str = Field(..., min_length=1, max_length=50)
    description: str | None = None
    organization_id: str | None = None
    team_id: str | None = None

    @field_validator(*_TRIMMED, mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ProjectUpdate(CamelModel):
    """Partial update; only the fields sent are applied."""

    name: str | None = Field(None, min_length=3, max_length=255)
    slug: str | None = Field(None, min_length=3, max_length=100, pattern=SLUG_PATTERN)
    platform: str | None = Field(None, min_length=1, max_length=50)
    status: Literal["active", "inactive"] | None = None
    description: str | None = None
    organization_id: str | None = None
    team_id: str | None = None

    @field_validator(*_TRIMMED, mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ProjectResponse(CamelModel):
    id: uuid.UUID
    name: str
    slug: str
    platform: str
    dsn: str | None
    public_key: str
    secret_key: str
    status: str
    organization_id: str | None
    team_id: str | None
    description: str | None
    created_at: datetime
    updated_at: datetime


class ProjectStats(CamelModel):
    total_errors: int = 0
    today_errors: int = 0
    resolved_errors: int = 0


class ProjectWithStats(ProjectResponse):
    stats: ProjectStats
