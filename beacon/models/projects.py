"""Monitoring project model."""

import uuid
from datetime import datetime

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.models.base import Base, UTCDateTime, utcnow


class ProjectStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


def generate_key() -> str:
    return uuid.uuid4().hex


class Project(Base):
    """An application reporting errors; SDKs authenticate with its public key."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    dsn: Mapped[str | None] = mapped_column(String(512), nullable=True)
    public_key: Mapped[str] = mapped_column(
        String(64),
        default=generate_key,
        unique=True,
        nullable=False,
        index=True,
    )
    secret_key: Mapped[str] = mapped_column(String(64), default=generate_key, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ProjectStatus.ACTIVE,
        nullable=False,
    )
    organization_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Company id in the main application, billed for AI usage",
    )
    team_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    def build_dsn(self, ingest_host: str) -> str:
        return f"https://{self.public_key}@{ingest_host}/{self.id}"
