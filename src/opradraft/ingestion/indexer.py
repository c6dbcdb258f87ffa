"""Embedding indexer: chunks → vectors → ordinance_chunks rows.

All batches are embedded before anything is written, and rows are committed
in a single transaction, so an embedding failure (or cancellation) never
leaves an ordinance half-indexed.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import mlflow
from mlflow.entities import SpanType
from sqlalchemy.ext.asyncio import AsyncSession

from opradraft.core.errors import MalformedInputError, ProviderError
from opradraft.core.types import TextChunk
from opradraft.observability.tracing import log_metrics
from opradraft.providers.base import Embedder
from opradraft.storage.db import get_session
from opradraft.storage.models import OrdinanceChunk

logger = logging.getLogger(__name__)

BATCH_SIZE = 20

SessionFactory = Callable[[], Awaitable[AsyncSession]]


class EmbeddingIndexer:
    """Embed chunks in bounded batches and persist them keyed by ordinance and order."""

    def __init__(
        self,
        embedder: Embedder,
        session_factory: SessionFactory = get_session,
        batch_size: int = BATCH_SIZE,
        concurrency: int = 1,
    ):
        self.embedder = embedder
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)

    async def embed_chunks(self, chunks: list[TextChunk]) -> list[list[float]]:
        """Vectors for ``chunks`` in chunk order, whatever order batches finish in."""
        batches = [chunks[i:i + self.batch_size] for i in range(0, len(chunks), self.batch_size)]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _embed(batch_idx: int, batch: list[TextChunk]) -> list[list[float]]:
            async with semaphore:
                with mlflow.start_span(name=f"embed_batch_{batch_idx}", span_type=SpanType.EMBEDDING) as span:
                    span.set_inputs({"batch_size": len(batch)})
                    vectors = await self.embedder.embed_batch([c.text for c in batch])
                    span.set_outputs({"count": len(vectors)})
            logger.debug("Embedded batch %d (%d chunks)", batch_idx, len(batch))
            return vectors

        tasks = [asyncio.create_task(_embed(i, b)) for i, b in enumerate(batches)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        vectors = [vec for batch_vectors in results for vec in batch_vectors]
        if len(vectors) != len(chunks):
            raise ProviderError(f"Expected {len(chunks)} embeddings, got {len(vectors)}", "embeddings")
        return vectors

    async def index(self, ordinance_id: str, chunks: list[TextChunk]) -> int:
        """Embed and store ``chunks`` for an ordinance. Returns the stored count."""
        if not chunks:
            return 0
        indices = [c.metadata.chunk_index for c in chunks]
        if indices != list(range(len(chunks))):
            raise MalformedInputError("Chunk indices must be contiguous from 0 in order")

        t0 = time.monotonic()
        vectors = await self.embed_chunks(chunks)

        rows = [
            OrdinanceChunk(
                ordinance_id=ordinance_id,
                chunk_index=chunk.metadata.chunk_index,
                section_number=chunk.metadata.section_number,
                section_title=chunk.metadata.section_title,
                content=chunk.text,
                embedding=vector,
                start_char=chunk.metadata.start_char,
                end_char=chunk.metadata.end_char,
            )
            for chunk, vector in zip(chunks, vectors)
        ]

        session = await self.session_factory()
        try:
            session.add_all(rows)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Indexed %d chunks for ordinance %s in %.0fms", len(rows), ordinance_id, elapsed_ms,
            extra={"ordinance_id": ordinance_id, "duration_ms": round(elapsed_ms)},
        )
        log_metrics({"indexed_chunks": float(len(rows)), "index_duration_ms": elapsed_ms})
        return len(rows)
