"""User and company-membership models."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beacon.models.base import Base, JSONType, UTCDateTime, utcnow

if TYPE_CHECKING:
    from beacon.models.companies import Company


class UserRole:
    ADMIN = "admin"
    USER = "user"


class User(Base):
    """Application user.

    Users either register locally (``hashed_password`` set) or are provisioned
    by the identity provider, in which case ``external_id`` holds the Logto id
    and the password is empty.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.USER,
        nullable=False,
        comment="admin or user",
    )

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    email: Mapped[str | None] = mapped_column(
        String(254),
        unique=True,
        nullable=True,
        index=True,
    )

    username: Mapped[str | None] = mapped_column(String(128), nullable=True)

    primary_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    hashed_password: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Argon2 hash, empty for identity-provider users",
    )

    external_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
        comment="Logto user id",
    )

    avatar_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    application_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_sign_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    custom_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    profile: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    identities: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    sso_identities: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    memberships: Mapped[list["UserCompany"]] = relationship(
        "UserCompany",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class UserCompany(Base):
    """Membership of a user in a company (pivot with role and primary flag)."""

    __tablename__ = "user_companies"
    __table_args__ = (UniqueConstraint("user_id", "company_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(String(50), default="member", nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="memberships")
    company: Mapped["Company"] = relationship(
        "Company",
        back_populates="memberships",
        lazy="selectin",
    )
