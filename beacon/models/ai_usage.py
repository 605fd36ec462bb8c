"""AI usage tracking, usage limits and per-model pricing."""

import math
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.models.base import Base, JSONType, UTCDateTime, utcnow


class AIOperation:
    GENERATE = "generate"
    EMBED = "embed"
    EXTRACT = "extract"
    STREAM = "stream"

    ALL = (GENERATE, EMBED, EXTRACT, STREAM)


class LimitPeriod:
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    ALL = (DAILY, WEEKLY, MONTHLY)


class AIUsage(Base):
    """One AI call made on behalf of a company."""

    __tablename__ = "ai_usage"
    __table_args__ = (
        Index("ix_ai_usage_company_created", "company_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    app_name: Mapped[str] = mapped_column(String(100), nullable=False)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)

    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    prompt_cost_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_cost_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cached: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    feature: Mapped[str | None] = mapped_column(String(100), nullable=True)
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def prompt_cost_dollars(self) -> float:
        return self.prompt_cost_cents / 100

    @property
    def completion_cost_dollars(self) -> float:
        return self.completion_cost_cents / 100

    @property
    def total_cost_dollars(self) -> float:
        return self.total_cost_cents / 100


class AIUsageLimit(Base):
    """Request/token/cost ceiling for a company over a rolling calendar period."""

    __tablename__ = "ai_usage_limits"
    __table_args__ = (
        Index("ix_ai_usage_limits_company_period", "company_id", "period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(10), nullable=False)

    max_requests: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_cost_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    current_requests: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_cost_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    period_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    warning_threshold_percent: Mapped[int] = mapped_column(
        Integer,
        default=80,
        nullable=False,
    )
    warning_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def _dimensions(self) -> list[tuple[str, int, int | None]]:
        return [
            ("requests", self.current_requests, self.max_requests),
            ("tokens", self.current_tokens, self.max_tokens),
            ("cost", self.current_cost_cents, self.max_cost_cents),
        ]

    def exceeded_limit_type(self) -> str | None:
        """First exhausted dimension in the order requests, tokens, cost."""
        for name, current, maximum in self._dimensions():
            if maximum and current >= maximum:
                return name
        return None

    def is_limit_exceeded(self) -> bool:
        return self.exceeded_limit_type() is not None

    def is_warning_threshold_reached(self) -> bool:
        threshold = self.warning_threshold_percent / 100
        return any(
            maximum and current >= maximum * threshold
            for _, current, maximum in self._dimensions()
        )

    def get_usage_percentage(self) -> dict[str, float | None]:
        return {
            name: (current / maximum) * 100 if maximum else None
            for name, current, maximum in self._dimensions()
        }

    def is_period_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.period_end


class AICostConfig(Base):
    """Price per 1K tokens for a provider/model/operation, valid over a time range."""

    __tablename__ = "ai_cost_config"
    __table_args__ = (
        Index("ix_ai_cost_config_lookup", "provider", "model", "operation"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)

    prompt_cost_per_1k_cents: Mapped[float] = mapped_column(Float, nullable=False)
    completion_cost_per_1k_cents: Mapped[float] = mapped_column(
        Float,
        default=0,
        nullable=False,
    )

    effective_from: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    effective_to: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def calculate_cost(
        self,
        prompt_tokens: int,
        completion_tokens: int = 0,
    ) -> dict[str, int]:
        """Cost in cents; each side is rounded up independently."""
        prompt_cost = math.ceil((prompt_tokens / 1000) * self.prompt_cost_per_1k_cents)
        completion_cost = math.ceil(
            (completion_tokens / 1000) * self.completion_cost_per_1k_cents
        )
        return {
            "prompt_cost_cents": prompt_cost,
            "completion_cost_cents": completion_cost,
            "total_cost_cents": prompt_cost + completion_cost,
        }

    def is_active(self, at: datetime | None = None) -> bool:
        at = at or utcnow()
        return self.effective_from <= at and (
            self.effective_to is None or self.effective_to > at
        )
