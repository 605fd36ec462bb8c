"""User authentication and management schemas."""

import re
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from beacon.schemas.common import CamelModel


def _validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one digit")
    return v


# ============================================================
# Local authentication
# ============================================================


class UserRegister(BaseModel):
    """Schema for user registration."""

    email: Annotated[
        EmailStr,
        Field(
            description="Email address - primary authentication identifier",
            examples=["user@example.com"],
        ),
    ]
    password: Annotated[
        str,
        Field(
            min_length=8,
            max_length=128,
            description="Password (minimum 8 characters)",
        ),
    ]
    full_name: str = Field(..., min_length=1, max_length=255)
    username: str | None = Field(None, min_length=3, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        return _validate_password_strength(v)


class UserLogin(BaseModel):
    """Schema for user login."""

    email: Annotated[
        EmailStr,
        Field(
            description="Email address",
            examples=["user@example.com"],
        ),
    ]
    password: Annotated[
        str,
        Field(
            min_length=1,
            max_length=128,
            description="Password",
        ),
    ]


class UserUpdate(BaseModel):
    """Schema for profile updates."""

    full_name: str | None = Field(None, max_length=255)
    username: str | None = Field(None, min_length=3, max_length=128)
    primary_phone: str | None = Field(None, max_length=20)
    password: str | None = Field(None, min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str | None) -> str | None:
        """Validate password strength if provided."""
        if v is None:
            return v
        return _validate_password_strength(v)


class UserResponse(BaseModel):
    """Schema for user responses (excludes sensitive data)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str | None
    full_name: str | None
    username: str | None
    primary_phone: str | None
    role: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class TokenResponse(BaseModel):
    """JWT token response schema."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")


class TokenRefresh(BaseModel):
    """Schema for token refresh request."""

    refresh_token: str = Field(..., description="Refresh token")


class UserWithTokens(UserResponse):
    """User response with JWT tokens (used after registration/login)."""

    tokens: TokenResponse


# ============================================================
# Admin user management
# ============================================================


class AdminUserPayload(CamelModel):
    """Create/edit payload of the admin user screens."""

    full_name: str = Field(..., min_length=3, max_length=255)
    email: EmailStr | None = None
    username: str | None = Field(None, min_length=3, max_length=128)
    primary_phone: str | None = Field(None, max_length=20)
    role: Literal["admin", "user"] = "user"
    external_id: str | None = Field(None, max_length=255)
    custom_data: dict[str, Any] | None = None

    @field_validator("full_name", "username", "primary_phone", "external_id")
    @classmethod
    def strip(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str | None) -> str | None:
        return v.lower().strip() if v else v


class AdminUserResponse(CamelModel):
    id: uuid.UUID
    full_name: str | None
    email: str | None
    username: str | None
    primary_phone: str | None
    role: str
    external_id: str | None
    avatar_url: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ============================================================
# M2M API
# ============================================================


class M2MUserSummary(CamelModel):
    id: uuid.UUID
    email: str | None
    full_name: str | None
    role: str
    external_id: str | None
    username: str | None
    created_at: datetime
    updated_at: datetime


class M2MUserDetail(M2MUserSummary):
    primary_phone: str | None
    avatar_url: str | None
    last_sign_in_at: datetime | None


class M2MUserCompany(CamelModel):
    id: uuid.UUID
    name: str
    is_primary: bool
    created_at: datetime
    updated_at: datetime
