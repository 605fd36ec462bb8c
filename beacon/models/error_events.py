"""Error event storage.

One row per event received from an SDK. The exception, request and context
payloads are kept as JSON next to the flattened columns used for filtering
and aggregation.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.models.base import Base, JSONType, UTCDateTime, utcnow


class ErrorEvent(Base):
    __tablename__ = "error_events"
    __table_args__ = (
        Index("ix_error_events_project_timestamp", "project_id", "timestamp"),
        Index("ix_error_events_group", "group_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    level: Mapped[str] = mapped_column(String(20), default="error", nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(255), default="Error", nullable=False)
    handled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), default="error", nullable=False)

    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    platform_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sdk: Mapped[str | None] = mapped_column(Text, nullable=True)
    sdk_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    release: Mapped[str | None] = mapped_column(String(255), nullable=True)
    environment: Mapped[str] = mapped_column(
        String(100),
        default="production",
        nullable=False,
    )
    server_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    runtime: Mapped[str | None] = mapped_column(String(100), nullable=True)
    runtime_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    transaction: Mapped[str | None] = mapped_column(String(512), nullable=True)
    transaction_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_info: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    exception: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    exception_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    exception_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    exception_module: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stack_trace: Mapped[str | None] = mapped_column(Text, nullable=True)
    frames_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    request: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    tags: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    extra: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    breadcrumbs: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)
    contexts: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    fingerprint: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    memory_usage: Mapped[float | None] = mapped_column(Float, nullable=True)
    cpu_usage: Mapped[float | None] = mapped_column(Float, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    first_seen: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    group_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("error_groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_sample: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sample_rate: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    has_been_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<ErrorEvent(id={self.id}, type={self.type}, level={self.level})>"
