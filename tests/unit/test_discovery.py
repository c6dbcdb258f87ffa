"""Tests for the ordinance discovery fallback chain (search, LLM, and answer engine faked)."""

import pytest

from opradraft.core.errors import ProviderError
from opradraft.core.types import Answer, Citation, SearchHit
from opradraft.ingestion.discovery import (
    ANSWER_ENGINE,
    FAST_PATH,
    MULTI_QUERY_AGENT,
    ContentVerdict,
    OrdinanceDiscovery,
    extract_code,
    extract_title,
    merge_hits,
)

ORDINANCE = (
    "City of Hoboken, Hudson County, New Jersey\n"
    "Chapter 155: Rent Leveling and Stabilization\n\n"
    "§ 155-1 Definitions. As used in this chapter, rent control means the regulation of rents "
    "for residential dwelling units.\n\n"
    + "§ 155-2 Rent increases. No landlord shall increase rent except as provided herein. " * 30
)

STUB = SearchHit(
    title="Search",
    url="https://example.com/search?q=hoboken",
    content="search results — no results found",
)

CODE_HIT = SearchHit(title="Chapter 155 | Hoboken Code", url="https://ecode360.com/nj/hoboken/155", content=ORDINANCE)


class FakeSearch:
    def __init__(self, hits: list[SearchHit] | None = None, error: Exception | None = None):
        self.hits = hits or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, query, max_results=10, domain_allowlist=None):
        self.queries.append(query)
        if self.error:
            raise self.error
        return list(self.hits)


class FakeAnswerEngine:
    def __init__(self, answer: Answer | None = None, error: Exception | None = None):
        self.answer = answer or Answer(content="")
        self.error = error
        self.prompts: list[str] = []

    async def ask(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


class FakeTextModel:
    def __init__(self, reply: str = "", verdict: ContentVerdict | None = None):
        self.reply = reply
        self.verdict = verdict
        self.generate_prompts: list[str] = []

    async def generate(self, prompt, system=None):
        self.generate_prompts.append(prompt)
        return self.reply

    async def classify(self, prompt, schema):
        return self.verdict or schema(is_valid=False)


class FakeFetcher:
    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.fetched: list[str] = []

    async def fetch_text(self, url):
        self.fetched.append(url)
        return self.pages.get(url)


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_search_results_stub_is_not_success(self):
        search = FakeSearch([STUB])
        model = FakeTextModel(reply="VALID_ORDINANCE")
        result = await OrdinanceDiscovery(search, text_model=model).discover("Hoboken")

        assert result.success is False
        assert result.content is None
        assert any(line.startswith(f"[{FAST_PATH}]") for line in result.reasoning)
        assert any(line.startswith(f"[{MULTI_QUERY_AGENT}]") for line in result.reasoning)
        assert any(line.startswith(f"[{ANSWER_ENGINE}]") for line in result.reasoning)
        assert model.generate_prompts == []

    @pytest.mark.asyncio
    async def test_stub_then_answer_engine_succeeds(self):
        engine = FakeAnswerEngine(Answer(
            content=ORDINANCE,
            citations=[Citation(url="https://news.example.com/hoboken"), Citation(url=CODE_HIT.url)],
        ))
        result = await OrdinanceDiscovery(FakeSearch([STUB]), answer_engine=engine).discover("Hoboken", "Hudson")

        assert result.success is True
        assert result.strategy == ANSWER_ENGINE
        assert result.url == CODE_HIT.url
        assert result.content == ORDINANCE
        assert result.confidence == "high"
        assert "Hudson County" in engine.prompts[0]

    @pytest.mark.asyncio
    async def test_first_acceptable_result_wins(self):
        engine = FakeAnswerEngine(Answer(content=ORDINANCE))
        result = await OrdinanceDiscovery(FakeSearch([STUB, CODE_HIT]), answer_engine=engine).discover("Hoboken")

        assert result.success is True
        assert result.strategy == FAST_PATH
        assert result.url == CODE_HIT.url
        assert result.title == "Rent Leveling and Stabilization"
        assert result.confidence == "high"
        assert engine.prompts == []

    @pytest.mark.asyncio
    async def test_search_errors_are_empty_results(self):
        search = FakeSearch(error=ProviderError("Tavily failed after 4 attempts", "Tavily"))
        result = await OrdinanceDiscovery(search).discover("Hoboken")

        assert result.success is False
        assert len(search.queries) > 2
        assert any("No search results" in line for line in result.reasoning)

    @pytest.mark.asyncio
    async def test_no_providers(self):
        result = await OrdinanceDiscovery(None).discover("Hoboken")
        assert result.success is False
        assert len(result.reasoning) == 3


class TestFastPath:
    @pytest.mark.asyncio
    async def test_uses_two_queries(self):
        search = FakeSearch([CODE_HIT])
        await OrdinanceDiscovery(search).fast_path("Hoboken")
        assert len(search.queries) == 2

    @pytest.mark.asyncio
    async def test_enriches_short_snippet(self):
        snippet = SearchHit(title="Hoboken Code", url=CODE_HIT.url, content="Hoboken NJ rent control chapter")
        fetcher = FakeFetcher({CODE_HIT.url: ORDINANCE})
        result = await OrdinanceDiscovery(FakeSearch([snippet]), fetcher=fetcher).fast_path("Hoboken")

        assert result.success is True
        assert result.content == ORDINANCE
        assert fetcher.fetched == [CODE_HIT.url]

    @pytest.mark.asyncio
    async def test_wrong_state_rejected(self):
        delaware = SearchHit(
            title="Newark Code", url="https://ecode360.com/de/newark/1",
            content=ORDINANCE.replace("Hoboken", "Newark").replace("Hudson County, New Jersey", "Delaware"),
        )
        result = await OrdinanceDiscovery(FakeSearch([delaware])).fast_path("Newark")
        assert result.success is False
        assert any("Delaware" in line for line in result.reasoning)


class TestMultiQueryAgent:
    @pytest.mark.asyncio
    async def test_ai_check_confirms_near_miss(self):
        page = SearchHit(
            title="Rent Control", url="https://www.hoboken.nj.us/rent-control",
            content="Hoboken, New Jersey rent control information for tenants and landlords",
        )
        model = FakeTextModel(reply="VALID_ORDINANCE")
        discovery = OrdinanceDiscovery(FakeSearch([page]), text_model=model)
        result = await discovery.multi_query_agent("Hoboken")

        assert result.success is True
        assert result.confidence == "medium"
        assert page.url in model.generate_prompts[0]
        assert any("confirmed by AI check" in line for line in result.reasoning)

    @pytest.mark.asyncio
    async def test_ai_rejection_tries_next_candidate(self):
        pages = [
            SearchHit(title=f"Page {i}", url=f"https://www.hoboken.nj.us/page-{i}",
                      content="Hoboken, New Jersey tenant information")
            for i in range(7)
        ]
        model = FakeTextModel(reply="This is a tenant FAQ.")
        result = await OrdinanceDiscovery(FakeSearch(pages), text_model=model, max_attempts=3).multi_query_agent("Hoboken")

        assert result.success is False
        assert len(model.generate_prompts) == 3
        assert "No valid ordinance in top 3 candidates" in result.reasoning

    @pytest.mark.asyncio
    async def test_other_state_candidates_skipped(self):
        other = SearchHit(title="Code", url="https://ecode360.com/pa/hoboken", content="Hoboken, Pennsylvania code")
        model = FakeTextModel(reply="VALID_ORDINANCE")
        result = await OrdinanceDiscovery(FakeSearch([other]), text_model=model).multi_query_agent("Hoboken")

        assert result.success is False
        assert any("wrong state" in line for line in result.reasoning)
        assert model.generate_prompts == []

    @pytest.mark.asyncio
    async def test_town_sharing_a_neighbor_state_name_is_kept(self):
        page = SearchHit(
            title="Township of Delaware Code",
            url="https://ecode360.com/nj/delaware-township/12",
            content="Township of Delaware, Hunterdon County. Chapter 12 Rent Control. "
            + "Section 1 No landlord shall increase rent except as provided herein. " * 40,
        )
        result = await OrdinanceDiscovery(FakeSearch([page])).multi_query_agent("Delaware Township", "Hunterdon")

        assert result.success is True
        assert result.url == page.url
        assert not any("wrong state" in line for line in result.reasoning)

    @pytest.mark.asyncio
    async def test_runs_every_query(self):
        search = FakeSearch([CODE_HIT])
        result = await OrdinanceDiscovery(search).multi_query_agent("Hoboken", "Hudson")
        assert len(search.queries) == 10
        assert result.success is True


class TestAnswerEnginePath:
    @pytest.mark.asyncio
    async def test_falls_back_to_best_citation(self):
        engine = FakeAnswerEngine(Answer(
            content="",
            citations=[Citation(url="https://news.example.com/story"), Citation(url=CODE_HIT.url, title="Ch. 155")],
        ))
        fetcher = FakeFetcher({CODE_HIT.url: ORDINANCE})
        result = await OrdinanceDiscovery(None, answer_engine=engine, fetcher=fetcher).answer_engine_path("Hoboken")

        assert result.success is True
        assert result.url == CODE_HIT.url
        assert fetcher.fetched == [CODE_HIT.url]

    @pytest.mark.asyncio
    async def test_ai_verdict_below_medium_falls_through(self):
        engine = FakeAnswerEngine(Answer(content="A summary of Hoboken rent rules.", citations=[]))
        model = FakeTextModel(verdict=ContentVerdict(is_valid=True, confidence="low", analysis="summary only"))
        result = await OrdinanceDiscovery(None, text_model=model, answer_engine=engine).answer_engine_path("Hoboken")

        assert result.success is False
        assert any("summary only" in line for line in result.reasoning)

    @pytest.mark.asyncio
    async def test_engine_failure(self):
        engine = FakeAnswerEngine(error=ProviderError("Perplexity error 500", "Perplexity"))
        result = await OrdinanceDiscovery(None, answer_engine=engine).answer_engine_path("Hoboken")
        assert result.success is False
        assert "Answer engine failed" in result.reasoning[0]

    @pytest.mark.asyncio
    async def test_site_search_when_fetch_fails(self):
        engine = FakeAnswerEngine(Answer(content="", citations=[Citation(url=CODE_HIT.url)]))
        search = FakeSearch([CODE_HIT])
        result = await OrdinanceDiscovery(search, answer_engine=engine).answer_engine_path("Hoboken")

        assert result.success is True
        assert search.queries == ["site:ecode360.com Hoboken rent control ordinance"]


class TestExtraction:
    def test_title_from_heading(self):
        assert extract_title("Hoboken | Code", ORDINANCE, "Hoboken") == "Rent Leveling and Stabilization"

    def test_title_from_page_title(self):
        assert extract_title("Rent Control - Hoboken, NJ", "no heading here", "Hoboken") == "Rent Control"

    def test_title_default(self):
        assert extract_title("", "", "Hoboken") == "Hoboken Rent Control Ordinance"

    def test_code(self):
        assert extract_code("Text of § 19-1. Definitions") == "§ 19-1"
        assert extract_code("CHAPTER 12 RENT CONTROL") == "Chapter 12"
        assert extract_code("nothing") is None

    def test_merge_hits_keeps_longest(self):
        merged = merge_hits([
            [SearchHit(title="a", url="https://ecode360.com/1/", content="short")],
            [SearchHit(title="b", url="https://ecode360.com/1#s2", content="much longer content")],
            [SearchHit(title="c", url="https://ecode360.com/2", content="x")],
        ])
        assert [h.title for h in merged] == ["b", "c"]
