"""Ordinance discovery: find the rent-control ordinance text for a municipality.

Strategies run in order until one yields a document with at least medium
confidence:

  1. fast_path          one or two keyword searches, top candidate validated
  2. multi_query_agent  query reformulations, merged and re-ranked, up to N
                        candidates checked, with an AI check for near-misses
  3. answer_engine      natural-language research engine; AI-judged content,
                        falling back to the most authoritative citation

The first acceptable result wins. Reasoning from every attempted strategy is
kept on the final result. A search backend failure counts as an empty result
for that query, never as a failed discovery.
"""

import asyncio
import logging
import re
from typing import Literal
from urllib.parse import urldefrag, urlparse

import httpx
import mlflow
from mlflow.entities import SpanType
from pydantic import BaseModel

from opradraft.core.errors import ProviderError
from opradraft.core.types import DiscoveryResult, SearchHit, confidence_at_least
from opradraft.ingestion.matcher import MunicipalityMatcher
from opradraft.ingestion.validator import (
    LONG_CONTENT_LENGTH,
    is_search_results_stub,
    validate_ordinance_content,
)
from opradraft.observability.prompts import get_active_prompt, render_prompt
from opradraft.observability.tracing import log_metrics
from opradraft.providers.base import AnswerEngine, KeywordSearch, PageFetcher, TextModel

logger = logging.getLogger(__name__)

MIN_ACCEPTABLE_CONFIDENCE = "medium"
MAX_AGENT_ATTEMPTS = 5
FAST_PATH_QUERIES = 2
RESULTS_PER_QUERY = 10
AI_CHECK_CONTENT_CHARS = 12_000
VALID_ORDINANCE_MARKER = "VALID_ORDINANCE"

FAST_PATH = "fast_path"
MULTI_QUERY_AGENT = "multi_query_agent"
ANSWER_ENGINE = "answer_engine"

_TITLE_PATTERN = re.compile(r"(?:Chapter|Article|§)\s*[\d-]+[:.\s-]+([^.\n]+)", re.IGNORECASE)
_CODE_PATTERN = re.compile(r"(Chapter|Article|§)\s*(\d+[\d-]*)", re.IGNORECASE)


class ContentVerdict(BaseModel):
    """AI judgment on whether text is the requested ordinance."""

    is_valid: bool
    confidence: Literal["high", "medium", "low"] = "low"
    analysis: str = ""


# ---------------------------------------------------------------------------
# Metadata extraction
# ---------------------------------------------------------------------------

def extract_title(page_title: str, content: str, municipality: str = "") -> str:
    """Ordinance title from a "Chapter N: Title" style heading, else the page title."""
    match = _TITLE_PATTERN.search(content)
    if match and match.group(1).strip():
        return match.group(1).strip()[:200]
    cleaned = re.sub(r"\s+[|–-]\s+.*$", "", page_title or "").strip()
    return cleaned or f"{municipality} Rent Control Ordinance".strip()


def extract_code(content: str) -> str | None:
    """Legal code identifier such as "§ 19-1" or "Chapter 12"."""
    match = _CODE_PATTERN.search(content)
    if not match:
        return None
    kind = match.group(1)
    kind = "§" if kind == "§" else kind.capitalize()
    return f"{kind} {match.group(2).rstrip('-')}"


def _normalize_url(url: str) -> str:
    return urldefrag(url)[0].rstrip("/").lower()


def merge_hits(hit_lists: list[list[SearchHit]]) -> list[SearchHit]:
    """Merge results from several queries, deduplicating by URL.

    When the same URL comes back more than once the copy with the most
    content wins (snippets differ per query).
    """
    merged: dict[str, SearchHit] = {}
    for hits in hit_lists:
        for hit in hits:
            key = _normalize_url(hit.url)
            existing = merged.get(key)
            if existing is None or len(hit.content) > len(existing.content):
                merged[key] = hit
    return list(merged.values())


class OrdinanceDiscovery:
    """Fallback chain over keyword search, AI classification, and an answer engine."""

    def __init__(
        self,
        search: KeywordSearch | None,
        text_model: TextModel | None = None,
        answer_engine: AnswerEngine | None = None,
        fetcher: PageFetcher | None = None,
        matcher: MunicipalityMatcher | None = None,
        max_attempts: int = MAX_AGENT_ATTEMPTS,
    ):
        self.search = search
        self.text_model = text_model
        self.answer_engine = answer_engine
        self.fetcher = fetcher
        self.matcher = matcher or MunicipalityMatcher()
        self.max_attempts = max_attempts

    # -----------------------------------------------------------------------
    # Shared helpers
    # -----------------------------------------------------------------------

    async def _safe_search(
        self,
        query: str,
        max_results: int = RESULTS_PER_QUERY,
        domain_allowlist: list[str] | None = None,
    ) -> list[SearchHit]:
        """Run one search; backend failures become an empty result."""
        try:
            return await self.search.search(query, max_results=max_results, domain_allowlist=domain_allowlist)
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning("Search failed for %r: %s", query[:80], e)
            return []

    def _candidate_text(self, hit: SearchHit) -> str:
        return f"{hit.title}\n{hit.url}\n{hit.content}"

    def _combined_score(self, hit: SearchHit, municipality: str, county: str | None) -> int:
        text = self._candidate_text(hit)
        return (
            self.matcher.score_url(hit.url, municipality)
            + validate_ordinance_content(hit.content).score
            + self.matcher.validate_match(text, municipality, county).confidence
        )

    def _rank(self, hits: list[SearchHit], municipality: str, county: str | None) -> list[SearchHit]:
        scored = [(self._combined_score(h, municipality, county), i, h) for i, h in enumerate(hits)]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [h for _, _, h in scored]

    def _success(self, hit: SearchHit, content: str, confidence: str, municipality: str, reasoning: list[str]):
        return DiscoveryResult(
            success=True,
            content=content,
            url=hit.url,
            title=extract_title(hit.title, content, municipality),
            confidence=confidence,
            reasoning=reasoning,
        )

    async def _enrich(self, hit: SearchHit) -> SearchHit:
        """Replace a short snippet with the full page for authoritative URLs."""
        if self.fetcher is None or len(hit.content) >= LONG_CONTENT_LENGTH:
            return hit
        if not self.matcher.is_likely_ordinance_url(hit.url):
            return hit
        text = await self.fetcher.fetch_text(hit.url)
        if text and len(text) > len(hit.content):
            return SearchHit(title=hit.title, url=hit.url, content=text, score=hit.score)
        return hit

    async def _ai_check(self, hit: SearchHit, municipality: str, county: str | None) -> tuple[bool, str]:
        """Ask the text model whether the candidate is the ordinance. Failures count as "no"."""
        prompt = render_prompt(
            "ordinance_check",
            municipality=municipality,
            county_or_state=f"{county} County, {self.matcher.state}" if county else self.matcher.state,
            url=hit.url,
            content=hit.content[:AI_CHECK_CONTENT_CHARS],
        )
        try:
            answer = await self.text_model.generate(prompt, system=get_active_prompt("ordinance_check_system"))
        except ProviderError as e:
            logger.warning("AI ordinance check failed for %s: %s", hit.url, e)
            return False, f"AI check unavailable: {e}"
        return VALID_ORDINANCE_MARKER in answer, answer.strip()

    async def _ai_validate(self, content: str, municipality: str) -> ContentVerdict:
        """AI-judged validation, or the lexical validator when no text model is configured."""
        if self.text_model is None:
            heuristic = validate_ordinance_content(content)
            match = self.matcher.validate_match(content, municipality)
            return ContentVerdict(
                is_valid=heuristic.is_valid and match.is_match,
                confidence=heuristic.confidence,
                analysis="; ".join(heuristic.issues + match.issues),
            )

        prompt = render_prompt(
            "content_validation",
            municipality=municipality,
            state=self.matcher.state,
            content=content[:AI_CHECK_CONTENT_CHARS],
        )
        try:
            return await self.text_model.classify(prompt, ContentVerdict)
        except ProviderError as e:
            logger.warning("AI content validation failed: %s", e)
            return ContentVerdict(is_valid=False, analysis=f"validation unavailable: {e}")

    # -----------------------------------------------------------------------
    # Strategy 1: fast path
    # -----------------------------------------------------------------------

    async def fast_path(self, municipality: str, county: str | None = None) -> DiscoveryResult:
        if self.search is None:
            return DiscoveryResult(success=False, reasoning=["No keyword search backend configured"])

        queries = self.matcher.build_search_queries(municipality, county)[:FAST_PATH_QUERIES]
        hits = merge_hits([await self._safe_search(q) for q in queries])
        if not hits:
            return DiscoveryResult(success=False, reasoning=[f"No search results for {len(queries)} queries"])

        top = await self._enrich(self._rank(hits, municipality, county)[0])
        validation = validate_ordinance_content(top.content)
        match = self.matcher.validate_match(self._candidate_text(top), municipality, county)
        reasoning = [
            f"Top candidate {top.url}: validator {validation.confidence} ({validation.score}), "
            f"jurisdiction {match.confidence}",
        ]

        if validation.is_valid and match.is_match:
            return self._success(top, top.content, validation.confidence, municipality, reasoning)

        reasoning.append("Rejected: " + "; ".join(validation.issues + match.issues))
        return DiscoveryResult(success=False, confidence=validation.confidence, reasoning=reasoning)

    # -----------------------------------------------------------------------
    # Strategy 2: multi-query agent
    # -----------------------------------------------------------------------

    async def multi_query_agent(self, municipality: str, county: str | None = None) -> DiscoveryResult:
        if self.search is None:
            return DiscoveryResult(success=False, reasoning=["No keyword search backend configured"])

        queries = self.matcher.build_search_queries(municipality, county)
        hit_lists = await asyncio.gather(*(self._safe_search(q) for q in queries))
        merged = merge_hits(list(hit_lists))
        reasoning = [f"{len(queries)} queries returned {len(merged)} unique candidates"]

        candidates = []
        for hit in merged:
            if self.matcher.is_hard_mismatch(self._candidate_text(hit), municipality, county):
                reasoning.append(f"Skipped {hit.url}: wrong state")
            else:
                candidates.append(hit)

        ranked = self._rank(candidates, municipality, county)
        for attempt, hit in enumerate(ranked[:self.max_attempts], start=1):
            hit = await self._enrich(hit)
            validation = validate_ordinance_content(hit.content)
            match = self.matcher.validate_match(self._candidate_text(hit), municipality, county)

            if validation.is_valid and match.is_match:
                reasoning.append(f"Attempt {attempt}: {hit.url} passed validation ({validation.confidence})")
                return self._success(hit, hit.content, validation.confidence, municipality, reasoning)

            if is_search_results_stub(hit.content):
                reasoning.append(f"Attempt {attempt}: {hit.url} is a search results page")
                continue

            if self.text_model is None:
                reasoning.append(f"Attempt {attempt}: {hit.url} failed validation: " + "; ".join(validation.issues))
                continue

            valid, analysis = await self._ai_check(hit, municipality, county)
            if valid:
                reasoning.append(f"Attempt {attempt}: {hit.url} confirmed by AI check")
                # AI confirmation lifts a low heuristic tier to medium
                confidence = validation.confidence if validation.confidence != "low" else "medium"
                return self._success(hit, hit.content, confidence, municipality, reasoning)
            reasoning.append(f"Attempt {attempt}: {hit.url} rejected by AI check: {analysis[:200]}")

        reasoning.append(f"No valid ordinance in top {min(len(ranked), self.max_attempts)} candidates")
        return DiscoveryResult(success=False, reasoning=reasoning)

    # -----------------------------------------------------------------------
    # Strategy 3: answer engine
    # -----------------------------------------------------------------------

    async def answer_engine_path(self, municipality: str, county: str | None = None) -> DiscoveryResult:
        if self.answer_engine is None:
            return DiscoveryResult(success=False, reasoning=["No answer engine configured"])

        prompt = render_prompt(
            "answer_question",
            municipality=municipality,
            county_clause=f", {county} County" if county else "",
            state=self.matcher.state,
        )
        try:
            answer = await self.answer_engine.ask(prompt)
        except ProviderError as e:
            logger.warning("Answer engine failed for %s: %s", municipality, e)
            return DiscoveryResult(success=False, reasoning=[f"Answer engine failed: {e}"])

        reasoning = [f"Answer engine returned {len(answer.content)} chars, {len(answer.citations)} citations"]
        citations = sorted(
            answer.citations,
            key=lambda c: self.matcher.score_url(c.url, municipality),
            reverse=True,
        )
        best_url = citations[0].url if citations else None

        if answer.content and not self.matcher.is_hard_mismatch(answer.content, municipality, county):
            verdict = await self._ai_validate(answer.content, municipality)
            if verdict.is_valid and confidence_at_least(verdict.confidence, MIN_ACCEPTABLE_CONFIDENCE):
                reasoning.append(f"Synthesized content validated ({verdict.confidence})")
                hit = SearchHit(title=citations[0].title if citations else "", url=best_url or "", content=answer.content)
                result = self._success(hit, answer.content, verdict.confidence, municipality, reasoning)
                result.url = best_url
                return result
            reasoning.append(f"Synthesized content rejected: {verdict.analysis[:200]}")
        else:
            reasoning.append("Synthesized content empty or about another state")

        if not citations:
            return DiscoveryResult(success=False, reasoning=reasoning)

        citation = citations[0]
        content = await self.fetcher.fetch_text(citation.url) if self.fetcher else None
        if not content and self.search is not None:
            host = urlparse(citation.url).netloc
            hits = await self._safe_search(f"site:{host} {municipality} rent control ordinance", max_results=3)
            content = hits[0].content if hits else None
        if not content:
            reasoning.append(f"Could not retrieve content from {citation.url}")
            return DiscoveryResult(success=False, reasoning=reasoning)

        if self.matcher.is_hard_mismatch(content, municipality, county):
            reasoning.append(f"Citation {citation.url} is about another state")
            return DiscoveryResult(success=False, reasoning=reasoning)

        verdict = await self._ai_validate(content, municipality)
        if verdict.is_valid:
            reasoning.append(f"Citation {citation.url} validated ({verdict.confidence})")
            hit = SearchHit(title=citation.title, url=citation.url, content=content)
            return self._success(hit, content, verdict.confidence, municipality, reasoning)

        reasoning.append(f"Citation {citation.url} rejected: {verdict.analysis[:200]}")
        return DiscoveryResult(success=False, confidence=verdict.confidence, reasoning=reasoning)

    # -----------------------------------------------------------------------
    # Orchestrator
    # -----------------------------------------------------------------------

    @mlflow.trace(name="discover_ordinance", span_type=SpanType.CHAIN)
    async def discover(self, municipality: str, county: str | None = None) -> DiscoveryResult:
        """Run the fallback chain. Returns the first result of at least medium confidence."""
        strategies = (
            (FAST_PATH, self.fast_path),
            (MULTI_QUERY_AGENT, self.multi_query_agent),
            (ANSWER_ENGINE, self.answer_engine_path),
        )
        reasoning: list[str] = []

        for attempted, (name, strategy) in enumerate(strategies, start=1):
            with mlflow.start_span(name=f"discovery_{name}") as span:
                span.set_inputs({"municipality": municipality, "county": county})
                result = await strategy(municipality, county)
                span.set_outputs({"success": result.success, "confidence": result.confidence})

            reasoning.extend(f"[{name}] {line}" for line in result.reasoning)
            if result.success and confidence_at_least(result.confidence, MIN_ACCEPTABLE_CONFIDENCE):
                logger.info(
                    "Discovered ordinance for %s via %s (%s): %s",
                    municipality, name, result.confidence, result.url,
                    extra={"municipality": municipality, "strategy": name},
                )
                log_metrics({"discovery_success": 1.0, "discovery_strategies_tried": float(attempted)})
                result.strategy = name
                result.reasoning = reasoning
                return result
            if result.success:
                reasoning.append(f"[{name}] Result below {MIN_ACCEPTABLE_CONFIDENCE} confidence, continuing")
            logger.info("Strategy %s found nothing acceptable for %s", name, municipality,
                        extra={"municipality": municipality, "strategy": name})

        log_metrics({"discovery_success": 0.0, "discovery_strategies_tried": float(len(strategies))})
        return DiscoveryResult(success=False, reasoning=reasoning)
