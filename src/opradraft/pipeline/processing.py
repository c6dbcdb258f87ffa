"""Ordinance processing: chunk the stored text and index it for retrieval."""

import logging

from sqlalchemy import func, select

from opradraft.core.errors import NotFoundError, PreconditionFailedError
from opradraft.core.types import ProcessResult
from opradraft.ingestion.chunker import OrdinanceChunker
from opradraft.ingestion.indexer import EmbeddingIndexer, SessionFactory
from opradraft.storage.db import get_session
from opradraft.storage.models import Ordinance, OrdinanceChunk

logger = logging.getLogger(__name__)


class OrdinanceProcessor:
    """Idempotent chunk-and-index step.

    An ordinance that already has chunks is reported as processed without
    re-indexing. A second request for an ordinance still being processed in
    this process is rejected rather than producing a duplicate chunk set.
    """

    def __init__(
        self,
        chunker: OrdinanceChunker,
        indexer: EmbeddingIndexer,
        session_factory: SessionFactory = get_session,
    ):
        self.chunker = chunker
        self.indexer = indexer
        self.session_factory = session_factory
        self._in_flight: set[str] = set()

    async def _load(self, ordinance_id: str) -> tuple[str, int]:
        session = await self.session_factory()
        try:
            ordinance = await session.get(Ordinance, ordinance_id)
            if ordinance is None:
                raise NotFoundError(f"Ordinance {ordinance_id} not found")
            existing = await session.execute(
                select(func.count()).select_from(OrdinanceChunk).where(OrdinanceChunk.ordinance_id == ordinance_id)
            )
            return ordinance.full_text, int(existing.scalar_one())
        finally:
            await session.close()

    async def process(self, ordinance_id: str) -> ProcessResult:
        if ordinance_id in self._in_flight:
            raise PreconditionFailedError(f"Ordinance {ordinance_id} is already being processed")
        self._in_flight.add(ordinance_id)
        try:
            full_text, existing = await self._load(ordinance_id)
            if existing:
                logger.info("Ordinance %s already processed (%d chunks)", ordinance_id, existing,
                            extra={"ordinance_id": ordinance_id})
                return ProcessResult(ordinance_id=ordinance_id, chunk_count=existing, already_processed=True)

            chunks = self.chunker.chunk(full_text)
            count = await self.indexer.index(ordinance_id, chunks)
            return ProcessResult(ordinance_id=ordinance_id, chunk_count=count)
        finally:
            self._in_flight.discard(ordinance_id)
