"""Vector store documents used for similarity search."""

from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from beacon.config import settings
from beacon.models.base import Base, JSONType, UTCDateTime, utcnow


class AIDocument(Base):
    """Embedded text chunk (currently indexed errors) with free-form metadata."""

    __tablename__ = "ai_documents"
    __table_args__ = (
        Index("ix_ai_documents_namespace", "namespace"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        default=dict,
        nullable=False,
    )
    namespace: Mapped[str] = mapped_column(String(100), default="default", nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.ai_embedding_dimensions),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
