"""Vector similarity search over indexed ordinance chunks.

Postgres/pgvector orders candidates by cosine distance; the threshold, sort
and truncation are applied in ``rank_results`` so the result contract
(nothing at or below threshold, descending similarity, at most ``limit``)
holds regardless of how candidates were produced.
"""

import logging
from collections.abc import Awaitable, Callable

import mlflow
from mlflow.entities import SpanType
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from opradraft.core.types import ChunkMetadata, SearchResult, TextChunk
from opradraft.providers.base import Embedder
from opradraft.storage.db import get_session
from opradraft.storage.models import OrdinanceChunk

logger = logging.getLogger(__name__)

# Empirically chosen cut-offs, pending calibration against labeled queries
GENERAL_SEARCH_THRESHOLD = 0.7
CATEGORY_SEARCH_THRESHOLD = 0.6

# Biases the query embedding toward passage retrieval
QUERY_INSTRUCTION = "Search query: {query}. Find relevant sections about: {query}"

SessionFactory = Callable[[], Awaitable[AsyncSession]]


def rank_results(results: list[SearchResult], limit: int, threshold: float) -> list[SearchResult]:
    """Keep results strictly above ``threshold``, best first, at most ``limit``."""
    kept = [r for r in results if r.similarity > threshold]
    kept.sort(key=lambda r: r.similarity, reverse=True)
    return kept[:max(0, limit)]


class VectorStore:
    """Retriever over the ordinance_chunks table."""

    def __init__(self, embedder: Embedder, session_factory: SessionFactory = get_session):
        self.embedder = embedder
        self.session_factory = session_factory

    async def _nearest(
        self,
        query_vector: list[float],
        ordinance_id: str | None,
        pool: int,
    ) -> list[SearchResult]:
        rows_query = select(
            OrdinanceChunk.ordinance_id,
            OrdinanceChunk.chunk_index,
            OrdinanceChunk.section_number,
            OrdinanceChunk.section_title,
            OrdinanceChunk.content,
            OrdinanceChunk.embedding,
        ).where(OrdinanceChunk.embedding.is_not(None))
        if ordinance_id is None:
            source = rows_query.subquery("chunks")
        else:
            # Filter before the distance sort; an HNSW scan yields only ef_search global neighbors
            source = (
                rows_query.where(OrdinanceChunk.ordinance_id == ordinance_id)
                .cte("ordinance_chunks_scoped")
                .prefix_with("MATERIALIZED")
            )

        distance = source.c.embedding.cosine_distance(query_vector)
        stmt = (
            select(
                source.c.ordinance_id,
                source.c.chunk_index,
                source.c.section_number,
                source.c.section_title,
                source.c.content,
                (1 - distance).label("similarity"),
            )
            .order_by(distance)
            .limit(pool)
        )

        session = await self.session_factory()
        try:
            rows = (await session.execute(stmt)).all()
        finally:
            await session.close()

        return [
            SearchResult(
                content=row.content,
                similarity=float(row.similarity),
                ordinance_id=row.ordinance_id,
                chunk_index=row.chunk_index,
                section_number=row.section_number,
                section_title=row.section_title,
            )
            for row in rows
        ]

    @mlflow.trace(name="similarity_search", span_type=SpanType.RETRIEVER)
    async def similarity_search(
        self,
        query: str,
        ordinance_id: str | None = None,
        limit: int = 10,
        threshold: float = GENERAL_SEARCH_THRESHOLD,
    ) -> list[SearchResult]:
        """Chunks most similar to ``query``, optionally within one ordinance.

        An empty list means nothing cleared the threshold; that is not an error.
        """
        if limit <= 0:
            return []
        query_vector = await self.embedder.embed(QUERY_INSTRUCTION.format(query=query))
        candidates = await self._nearest(query_vector, ordinance_id, pool=limit)
        results = rank_results(candidates, limit, threshold)
        logger.debug(
            "similarity_search(%r) → %d/%d above %.2f", query[:60], len(results), len(candidates), threshold,
        )
        return results

    async def find_by_category_keywords(
        self,
        ordinance_id: str,
        keywords: list[str],
        limit: int = 5,
    ) -> list[SearchResult]:
        """Keyword-phrased search at the lower category threshold."""
        return await self.similarity_search(
            " ".join(keywords), ordinance_id=ordinance_id, limit=limit, threshold=CATEGORY_SEARCH_THRESHOLD,
        )

    async def get_ordinance_chunks(self, ordinance_id: str) -> list[TextChunk]:
        """All chunks of an ordinance in chunk-index order."""
        stmt = (
            select(OrdinanceChunk)
            .where(OrdinanceChunk.ordinance_id == ordinance_id)
            .order_by(OrdinanceChunk.chunk_index)
        )
        session = await self.session_factory()
        try:
            rows = (await session.execute(stmt)).scalars().all()
        finally:
            await session.close()

        return [
            TextChunk(
                text=row.content,
                metadata=ChunkMetadata(
                    chunk_index=row.chunk_index,
                    start_char=row.start_char,
                    end_char=row.end_char,
                    section_number=row.section_number,
                    section_title=row.section_title,
                ),
            )
            for row in rows
        ]

    async def count_chunks(self, ordinance_id: str) -> int:
        stmt = select(func.count()).select_from(OrdinanceChunk).where(OrdinanceChunk.ordinance_id == ordinance_id)
        session = await self.session_factory()
        try:
            return int((await session.execute(stmt)).scalar_one())
        finally:
            await session.close()
