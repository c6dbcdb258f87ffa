"""Tests for the category analyzer (LLM and vector store replaced by in-memory fakes)."""

import pytest

from opradraft.analysis.analyzer import (
    CategoryAnalyzer,
    CategoryRelevance,
    RecordsList,
    SectionAnalysis,
    format_taxonomy,
)
from opradraft.core.categories import get_categories, get_category, required_category_ids
from opradraft.core.errors import PreconditionFailedError, ProviderError
from opradraft.core.types import ChunkMetadata, SearchResult, TextChunk


def _chunk(index: int, section: str | None, marker: str) -> TextChunk:
    return TextChunk(
        text=f"§ {section} - Section\n\n{marker}" if section else marker,
        metadata=ChunkMetadata(chunk_index=index, start_char=0, end_char=10, section_number=section),
    )


class FakeVectorStore:
    def __init__(self, chunks: list[TextChunk], keyword_hits: dict[str, float] | None = None,
                 fail_keywords: bool = False):
        self.chunks = chunks
        self.keyword_hits = keyword_hits or {}
        self.fail_keywords = fail_keywords
        self.keyword_calls: list[tuple[str, list[str], int]] = []

    async def get_ordinance_chunks(self, ordinance_id: str) -> list[TextChunk]:
        return list(self.chunks)

    async def find_by_category_keywords(self, ordinance_id: str, keywords: list[str], limit: int = 5):
        self.keyword_calls.append((ordinance_id, keywords, limit))
        if self.fail_keywords:
            raise ProviderError("embeddings down", "embeddings")
        similarity = self.keyword_hits.get(keywords[0])
        if similarity is None:
            return []
        return [SearchResult(content=f"Text about {keywords[0]}", similarity=similarity,
                             ordinance_id=ordinance_id, section_number="7")]


class FakeTextModel:
    """Returns canned classifications keyed by a marker token found in the prompt."""

    def __init__(self, sections: dict[str, SectionAnalysis] | None = None, records: list[str] | None = None,
                 fail_records: bool = False):
        self.sections = sections or {}
        self.records = records or []
        self.fail_records = fail_records
        self.prompts: list[str] = []

    async def generate(self, prompt: str, system: str | None = None) -> str:
        return ""

    async def classify(self, prompt, schema):
        self.prompts.append(prompt)
        if schema is RecordsList:
            if self.fail_records:
                raise ProviderError("llm down", "llm")
            return RecordsList(records=self.records)
        if "@@FAIL@@" in prompt:
            raise ProviderError("llm down", "llm")
        for marker, analysis in self.sections.items():
            if marker in prompt:
                return analysis
        return SectionAnalysis()


BOARD_SECTION = SectionAnalysis(
    relevant_categories=[
        CategoryRelevance(category_id="board-admin", relevance="high"),
        CategoryRelevance(category_id="statistics-reporting", relevance="medium"),
        CategoryRelevance(category_id="policy-planning", relevance="low"),
        CategoryRelevance(category_id="not-a-category", relevance="high"),
    ],
    key_provisions=["Board meets monthly"],
    has_rent_control_board=True,
)

COMPLAINT_SECTION = SectionAnalysis(
    relevant_categories=[CategoryRelevance(category_id="loss-of-use", relevance="high")],
    key_provisions=["Tenants may file complaints"],
    has_complaint_process=True,
)


class TestAnalyzeOrdinance:
    @pytest.mark.asyncio
    async def test_required_categories_always_present(self):
        store = FakeVectorStore([_chunk(0, "1", "@@PLAIN@@")])
        analysis = await CategoryAnalyzer(store, FakeTextModel()).analyze_ordinance("ord-1")
        for category_id in required_category_ids():
            assert category_id in analysis.relevant_categories

    @pytest.mark.asyncio
    async def test_aggregates_high_and_medium(self):
        store = FakeVectorStore([_chunk(0, "1", "@@BOARD@@"), _chunk(1, "2", "@@COMPLAINT@@")])
        model = FakeTextModel({"@@BOARD@@": BOARD_SECTION, "@@COMPLAINT@@": COMPLAINT_SECTION})
        analysis = await CategoryAnalyzer(store, model).analyze_ordinance("ord-1")

        assert "statistics-reporting" in analysis.relevant_categories
        assert "loss-of-use" in analysis.relevant_categories
        assert "policy-planning" not in analysis.relevant_categories
        assert "not-a-category" not in analysis.relevant_categories
        assert analysis.has_rent_control_board is True
        assert analysis.has_complaint_process is True
        assert analysis.has_enforcement_mechanism is False
        assert analysis.key_provisions == ["Board meets monthly", "Tenants may file complaints"]
        assert analysis.total_sections == 2

    @pytest.mark.asyncio
    async def test_categories_in_taxonomy_order(self):
        store = FakeVectorStore([_chunk(0, "1", "@@BOARD@@"), _chunk(1, "2", "@@COMPLAINT@@")])
        model = FakeTextModel({"@@BOARD@@": BOARD_SECTION, "@@COMPLAINT@@": COMPLAINT_SECTION})
        analysis = await CategoryAnalyzer(store, model).analyze_ordinance("ord-1")
        order = [c.id for c in get_categories()]
        assert analysis.relevant_categories == sorted(analysis.relevant_categories, key=order.index)

    @pytest.mark.asyncio
    async def test_unlabeled_chunks_not_classified(self):
        store = FakeVectorStore([_chunk(0, None, "Preamble @@BOARD@@"), _chunk(1, "1", "@@PLAIN@@")])
        model = FakeTextModel({"@@BOARD@@": BOARD_SECTION})
        analysis = await CategoryAnalyzer(store, model).analyze_ordinance("ord-1")
        assert analysis.total_sections == 1
        assert analysis.has_rent_control_board is False
        section_prompts = [p for p in model.prompts if "Preamble" in p]
        assert section_prompts == []

    @pytest.mark.asyncio
    async def test_failing_section_is_tolerated(self):
        store = FakeVectorStore([_chunk(0, "1", "@@BOARD@@"), _chunk(1, "2", "@@FAIL@@")])
        model = FakeTextModel({"@@BOARD@@": BOARD_SECTION})
        analysis = await CategoryAnalyzer(store, model).analyze_ordinance("ord-1")

        assert "statistics-reporting" in analysis.relevant_categories
        assert analysis.failed_sections == ["2"]
        assert "1 of 2 sections could not be analyzed" in analysis.warnings

    @pytest.mark.asyncio
    async def test_no_chunks_is_precondition_failure(self):
        with pytest.raises(PreconditionFailedError):
            await CategoryAnalyzer(FakeVectorStore([]), FakeTextModel()).analyze_ordinance("ord-1")

    @pytest.mark.asyncio
    async def test_supplemental_category_added_above_threshold(self):
        store = FakeVectorStore(
            [_chunk(0, "1", "@@PLAIN@@")],
            keyword_hits={"complaint": 0.81, "violation": 0.75, "reduction": 0.5},
        )
        analysis = await CategoryAnalyzer(store, FakeTextModel()).analyze_ordinance("ord-1")

        assert analysis.supplemental_categories == ["tenant-complaints"]
        assert "tenant-complaints" in analysis.relevant_categories
        assert "violations-penalties" not in analysis.relevant_categories
        assert "service-reduction" not in analysis.relevant_categories

    @pytest.mark.asyncio
    async def test_supplemental_skips_present_categories(self):
        store = FakeVectorStore([_chunk(0, "1", "@@PLAIN@@")], keyword_hits={"inspection": 0.99})
        analysis = await CategoryAnalyzer(store, FakeTextModel()).analyze_ordinance("ord-1")

        searched = [keywords[0] for _, keywords, _ in store.keyword_calls]
        assert "inspection" not in searched
        assert "compliance-enforcement" not in analysis.supplemental_categories
        assert all(limit == 1 for _, _, limit in store.keyword_calls)

    @pytest.mark.asyncio
    async def test_supplemental_failure_becomes_warning(self):
        store = FakeVectorStore([_chunk(0, "1", "@@PLAIN@@")], fail_keywords=True)
        analysis = await CategoryAnalyzer(store, FakeTextModel()).analyze_ordinance("ord-1")
        assert analysis.supplemental_categories == []
        assert any("tenant-complaints" in w for w in analysis.warnings)

    @pytest.mark.asyncio
    async def test_bounded_concurrency_same_result(self):
        chunks = [_chunk(i, str(i + 1), "@@BOARD@@" if i % 2 else "@@COMPLAINT@@") for i in range(6)]
        model = FakeTextModel({"@@BOARD@@": BOARD_SECTION, "@@COMPLAINT@@": COMPLAINT_SECTION})
        serial = await CategoryAnalyzer(FakeVectorStore(chunks), model, concurrency=1).analyze_ordinance("o")
        parallel = await CategoryAnalyzer(FakeVectorStore(chunks), model, concurrency=4).analyze_ordinance("o")
        assert serial.relevant_categories == parallel.relevant_categories
        assert [f.chunk_index for f in parallel.findings] == list(range(6))


class TestRecordsSummary:
    @pytest.mark.asyncio
    async def test_records_from_model(self):
        store = FakeVectorStore([], keyword_hits={"Board Administrative Records": 0.8})
        model = FakeTextModel(records=[" Minutes of 2025 meetings ", "", "Training logs"])
        summary = await CategoryAnalyzer(store, model).generate_records_summary("ord-1", ["board-admin"])

        assert summary == {"board-admin": ["Minutes of 2025 meetings", "Training logs"]}
        assert "Section 7: Text about Board Administrative Records" in model.prompts[0]

    @pytest.mark.asyncio
    async def test_records_capped(self):
        store = FakeVectorStore([], keyword_hits={"Board Administrative Records": 0.8})
        model = FakeTextModel(records=[f"Record {i}" for i in range(8)])
        summary = await CategoryAnalyzer(store, model).generate_records_summary("ord-1", ["board-admin"])
        assert len(summary["board-admin"]) == 5

    @pytest.mark.asyncio
    async def test_no_context_uses_fallback(self):
        model = FakeTextModel(records=["never used"])
        summary = await CategoryAnalyzer(FakeVectorStore([]), model).generate_records_summary(
            "ord-1", ["board-admin", "loss-of-use"],
        )
        assert summary["board-admin"] == get_category("board-admin").fallback_records()
        assert summary["loss-of-use"] == ["All records related to loss of use calculations"]
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_model_failure_uses_fallback(self):
        store = FakeVectorStore([], keyword_hits={"Board Administrative Records": 0.8})
        model = FakeTextModel(fail_records=True)
        summary = await CategoryAnalyzer(store, model).generate_records_summary("ord-1", ["board-admin"])
        assert summary["board-admin"] == get_category("board-admin").fallback_records()

    @pytest.mark.asyncio
    async def test_unknown_category_skipped(self):
        summary = await CategoryAnalyzer(FakeVectorStore([]), FakeTextModel()).generate_records_summary(
            "ord-1", ["no-such-category"],
        )
        assert summary == {}


class TestFormatTaxonomy:
    def test_one_line_per_category(self):
        text = format_taxonomy(get_categories())
        assert len(text.splitlines()) == len(get_categories())
        assert text.splitlines()[0].startswith("- board-admin: Board Administrative Records - ")
