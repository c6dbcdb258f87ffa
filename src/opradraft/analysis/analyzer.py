"""Category analyzer: section-level LLM classification → document-level category set.

Pipeline per ordinance:
  1. Load all chunks in chunk-index order
  2. Classify every chunk that carries a section number against the taxonomy
  3. Aggregate high/medium categories, OR-reduce the boolean flags
  4. Add every required category
  5. Run keyword-driven supplemental searches for under-detected categories

Sections are classified with bounded concurrency. Aggregation is a set union
and an OR-reduction, so completion order does not affect the result. A
failed section is recorded on its finding and skipped.
"""

import asyncio
import logging
import time
from typing import Literal

import mlflow
from mlflow.entities import SpanType
from pydantic import BaseModel, Field

from opradraft.core.categories import OpraCategory, get_categories
from opradraft.core.errors import PreconditionFailedError, ProviderError
from opradraft.core.types import OrdinanceAnalysis, SectionFinding, TextChunk
from opradraft.observability.prompts import render_prompt
from opradraft.observability.tracing import log_metrics
from opradraft.providers.base import TextModel
from opradraft.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)

SUPPLEMENTAL_MATCH_THRESHOLD = 0.75
RECORDS_CONTEXT_CHUNKS = 3
MAX_RECORDS_PER_CATEGORY = 5
ANALYSIS_CONCURRENCY = 4

# Categories the section classifier tends to miss, with the phrasing used to find them
SUPPLEMENTAL_SEARCHES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tenant-complaints", ("complaint", "appeal", "dispute")),
    ("violations-penalties", ("violation", "penalty", "fine", "enforcement")),
    ("compliance-enforcement", ("inspection", "compliance", "certification")),
    ("service-reduction", ("reduction", "decrease", "service")),
    ("professional-services", ("professional", "consultant", "expert", "attorney")),
)


# ---------------------------------------------------------------------------
# Structured LLM output
# ---------------------------------------------------------------------------

class CategoryRelevance(BaseModel):
    category_id: str
    relevance: Literal["high", "medium", "low"]
    reason: str = ""


class SectionAnalysis(BaseModel):
    """Classifier output for one ordinance section."""

    relevant_categories: list[CategoryRelevance] = Field(default_factory=list)
    key_provisions: list[str] = Field(default_factory=list)
    has_rent_control_board: bool = False
    has_complaint_process: bool = False
    has_enforcement_mechanism: bool = False


class RecordsList(BaseModel):
    records: list[str] = Field(default_factory=list)


def format_taxonomy(categories: tuple[OpraCategory, ...]) -> str:
    return "\n".join(f"- {c.id}: {c.name} - {c.description}" for c in categories)


class CategoryAnalyzer:
    """Determine which OPRA record categories an indexed ordinance supports."""

    def __init__(
        self,
        vector_store: VectorStore,
        text_model: TextModel,
        categories: tuple[OpraCategory, ...] | None = None,
        concurrency: int = ANALYSIS_CONCURRENCY,
    ):
        self.vector_store = vector_store
        self.text_model = text_model
        self.categories = categories if categories is not None else get_categories()
        self.concurrency = max(1, concurrency)
        self._by_id = {c.id: c for c in self.categories}

    # -----------------------------------------------------------------------
    # Section classification
    # -----------------------------------------------------------------------

    async def analyze_section(self, chunk: TextChunk) -> SectionFinding:
        """Classify one section. Provider failures are captured on the finding."""
        meta = chunk.metadata
        finding = SectionFinding(chunk_index=meta.chunk_index, section_number=meta.section_number or "")
        prompt = render_prompt(
            "section_analysis",
            section=chunk.text,
            categories=format_taxonomy(self.categories),
        )
        try:
            analysis = await self.text_model.classify(prompt, SectionAnalysis)
        except ProviderError as e:
            logger.warning("Section %s analysis failed: %s", finding.section_number, e)
            finding.error = str(e)
            return finding

        for item in analysis.relevant_categories:
            if item.category_id not in self._by_id:
                logger.debug("Ignoring unknown category %r from section %s", item.category_id, finding.section_number)
                continue
            finding.categories[item.category_id] = item.relevance
        finding.key_provisions = list(analysis.key_provisions)
        finding.has_rent_control_board = analysis.has_rent_control_board
        finding.has_complaint_process = analysis.has_complaint_process
        finding.has_enforcement_mechanism = analysis.has_enforcement_mechanism
        return finding

    async def _classify_sections(self, sections: list[TextChunk]) -> list[SectionFinding]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(chunk: TextChunk) -> SectionFinding:
            async with semaphore:
                return await self.analyze_section(chunk)

        return list(await asyncio.gather(*(_bounded(c) for c in sections)))

    # -----------------------------------------------------------------------
    # Supplemental keyword searches
    # -----------------------------------------------------------------------

    async def _supplemental_categories(
        self,
        ordinance_id: str,
        present: set[str],
        warnings: list[str],
    ) -> list[str]:
        added = []
        for category_id, keywords in SUPPLEMENTAL_SEARCHES:
            if category_id in present or category_id not in self._by_id:
                continue
            try:
                hits = await self.vector_store.find_by_category_keywords(ordinance_id, list(keywords), limit=1)
            except ProviderError as e:
                logger.warning("Supplemental search for %s failed: %s", category_id, e)
                warnings.append(f"supplemental search for {category_id} failed: {e}")
                continue
            if hits and hits[0].similarity > SUPPLEMENTAL_MATCH_THRESHOLD:
                added.append(category_id)
        return added

    # -----------------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------------

    @mlflow.trace(name="analyze_ordinance", span_type=SpanType.CHAIN)
    async def analyze_ordinance(self, ordinance_id: str) -> OrdinanceAnalysis:
        """Aggregate section classifications into the ordinance's relevant categories.

        Raises:
            PreconditionFailedError: the ordinance has no indexed chunks yet.
        """
        t0 = time.monotonic()
        chunks = await self.vector_store.get_ordinance_chunks(ordinance_id)
        if not chunks:
            raise PreconditionFailedError(f"Ordinance {ordinance_id} has not been processed")

        sections = [c for c in chunks if c.metadata.section_number]
        findings = await self._classify_sections(sections)

        found: set[str] = set()
        key_provisions: list[str] = []
        board = complaint = enforcement = False
        for finding in findings:
            if finding.error:
                continue
            found.update(cid for cid, rel in finding.categories.items() if rel in ("high", "medium"))
            key_provisions.extend(finding.key_provisions)
            board = board or finding.has_rent_control_board
            complaint = complaint or finding.has_complaint_process
            enforcement = enforcement or finding.has_enforcement_mechanism

        found.update(c.id for c in self.categories if c.required)

        warnings: list[str] = []
        supplemental = await self._supplemental_categories(ordinance_id, found, warnings)
        found.update(supplemental)

        failed = [f for f in findings if f.error]
        if failed:
            warnings.append(f"{len(failed)} of {len(findings)} sections could not be analyzed")

        analysis = OrdinanceAnalysis(
            relevant_categories=[c.id for c in self.categories if c.id in found],
            total_sections=len(sections),
            has_rent_control_board=board,
            has_complaint_process=complaint,
            has_enforcement_mechanism=enforcement,
            key_provisions=key_provisions,
            supplemental_categories=supplemental,
            findings=findings,
            warnings=warnings,
        )

        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Analyzed ordinance %s: %d sections, %d categories (%d failed sections)",
            ordinance_id, len(sections), len(analysis.relevant_categories), len(failed),
            extra={"ordinance_id": ordinance_id, "duration_ms": round(elapsed_ms)},
        )
        log_metrics({
            "analysis_sections": float(len(sections)),
            "analysis_categories": float(len(analysis.relevant_categories)),
            "analysis_failed_sections": float(len(failed)),
        })
        return analysis

    async def generate_records_summary(self, ordinance_id: str, category_ids: list[str]) -> dict[str, list[str]]:
        """Concrete records to request per category, grounded in retrieved ordinance text.

        Categories with no retrievable context, or whose LLM call fails, get
        the taxonomy's static fallback list. Unknown ids are skipped.
        """
        summary: dict[str, list[str]] = {}
        for category_id in category_ids:
            category = self._by_id.get(category_id)
            if category is None:
                logger.warning("Skipping unknown category %r", category_id)
                continue
            summary[category_id] = await self._records_for(ordinance_id, category)
        return summary

    async def _records_for(self, ordinance_id: str, category: OpraCategory) -> list[str]:
        try:
            hits = await self.vector_store.find_by_category_keywords(
                ordinance_id, [category.name, category.description], limit=RECORDS_CONTEXT_CHUNKS,
            )
        except ProviderError as e:
            logger.warning("Context retrieval for %s failed: %s", category.id, e)
            return category.fallback_records()
        if not hits:
            return category.fallback_records()

        context = "\n\n".join(
            f"Section {h.section_number}: {h.content}" if h.section_number else h.content for h in hits
        )
        prompt = render_prompt(
            "records_summary",
            category_name=category.name,
            category_description=category.description,
            context=context,
        )
        try:
            result = await self.text_model.classify(prompt, RecordsList)
        except ProviderError as e:
            logger.warning("Records summary for %s failed: %s", category.id, e)
            return category.fallback_records()

        records = [r.strip() for r in result.records if r and r.strip()][:MAX_RECORDS_PER_CATEGORY]
        return records or category.fallback_records()
