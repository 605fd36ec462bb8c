"""pgvector-backed document store for similarity search."""

import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.database import get_session_context
from beacon.models.base import utcnow
from beacon.models.documents import AIDocument

logger = logging.getLogger(__name__)


class Document(BaseModel):
    """A text chunk with metadata (``source`` and ``type`` are expected keys)."""

    id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    namespace: str = "default"
    embedding: list[float] | None = None


class VectorStore:
    """Stores embedded documents in ``ai_documents`` and searches by cosine distance."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session_context,
    ):
        self.session_factory = session_factory

    async def add_documents(self, documents: list[Document]) -> None:
        """Insert or replace documents (matched on id)."""
        if not documents:
            return

        now = utcnow()
        async with self.session_factory() as session:
            for doc in documents:
                stmt = insert(AIDocument.__table__).values(
                    id=doc.id,
                    content=doc.content,
                    metadata=doc.metadata,
                    namespace=doc.namespace,
                    embedding=doc.embedding,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={
                        "content": stmt.excluded["content"],
                        "metadata": stmt.excluded["metadata"],
                        "namespace": stmt.excluded["namespace"],
                        "embedding": stmt.excluded["embedding"],
                        "updated_at": now,
                    },
                )
                await session.execute(stmt)

        logger.info(f"Stored {len(documents)} documents in vector store")

    async def search(
        self,
        query_embedding: list[float],
        namespace: str,
        filters: dict[str, Any] | None = None,
        limit: int = 5,
        min_similarity: float = 0.0,
    ) -> list[Document]:
        """Nearest documents in ``namespace`` whose metadata contains ``filters``.

        Returns:
            Documents ordered by similarity, each with ``metadata["similarity"]``.
        """
        # PGVector uses cosine distance = 1 - cosine similarity
        distance_threshold = 1 - min_similarity
        query_vector_str = "[" + ",".join(f"{x:.8f}" for x in query_embedding) + "]"

        filter_clause = ""
        params: dict[str, Any] = {
            "query_vector": query_vector_str,
            "namespace": namespace,
            "distance_threshold": distance_threshold,
            "limit": limit,
        }
        if filters:
            filter_clause = "AND metadata @> CAST(:filters AS jsonb)"
            params["filters"] = json.dumps(filters)

        sql = text(f"""
            SELECT
                id,
                content,
                metadata,
                namespace,
                (embedding <=> CAST(:query_vector AS vector)) AS distance
            FROM ai_documents
            WHERE namespace = :namespace
              AND embedding IS NOT NULL
              AND (embedding <=> CAST(:query_vector AS vector)) <= :distance_threshold
              {filter_clause}
            ORDER BY distance ASC
            LIMIT :limit
        """)

        async with self.session_factory() as session:
            result = await session.execute(sql, params)
            rows = result.fetchall()

        logger.debug(f"Vector search in {namespace} returned {len(rows)} documents")

        return [
            Document(
                id=row.id,
                content=row.content,
                namespace=row.namespace,
                metadata={**(row.metadata or {}), "similarity": 1 - row.distance},
            )
            for row in rows
        ]
