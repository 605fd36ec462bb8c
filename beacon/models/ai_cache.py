"""Cross-project cache of AI analysis results."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.models.base import Base, JSONType, UTCDateTime, utcnow


class AnalysisType:
    ERROR_ANALYSIS = "error_analysis"
    SUGGESTED_FIX = "suggested_fix"
    SIMILAR_ERRORS = "similar_errors"

    ALL = (ERROR_ANALYSIS, SUGGESTED_FIX, SIMILAR_ERRORS)


class AIAnalysisCache(Base):
    """Stored analysis keyed by error fingerprint and analysis type.

    ``projects_used`` records every project that consumed the entry; private
    entries are only served to those projects.
    """

    __tablename__ = "ai_analysis_cache"
    __table_args__ = (
        Index("ix_ai_analysis_cache_lookup", "fingerprint_hash", "analysis_type"),
        Index("ix_ai_analysis_cache_last_used", "last_used_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    analysis_type: Mapped[str] = mapped_column(String(30), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    analysis_result: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_hash: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error_patterns: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    projects_used: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    avg_feedback_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    feedback_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tokens_saved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost_saved_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )
