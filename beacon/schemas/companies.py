"""Company schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import EmailStr, Field, HttpUrl, field_validator

from beacon.schemas.common import CamelModel


class CompanyPayload(CamelModel):
    """Create/edit payload for a company."""

    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    website: HttpUrl | None = None
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    logo_url: str | None = None
    custom_data: dict[str, Any] | None = None

    @field_validator("name", "description", "phone", "address", "city", "state", "postal_code", "country")
    @classmethod
    def strip(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str | None) -> str | None:
        return v.lower() if v else v

    def to_fields(self) -> dict[str, Any]:
        fields = self.model_dump()
        if self.website is not None:
            fields["website"] = str(self.website)
        return fields


class CompanyMember(CamelModel):
    user_id: uuid.UUID
    role: str
    is_primary: bool


class CompanyResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None
    website: str | None
    email: str | None
    phone: str | None
    address: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    country: str | None
    external_id: str | None
    logo_url: str | None
    custom_data: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class CompanyWithMembers(CompanyResponse):
    memberships: list[CompanyMember] = Field(default_factory=list, serialization_alias="members")


class M2MCompanySummary(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None
    logo_url: str | None
    external_id: str | None


class M2MCompanyList(CamelModel):
    companies: list[M2MCompanySummary]
