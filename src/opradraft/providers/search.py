"""Tavily keyword search.

POST https://api.tavily.com/search returns ranked pages with extracted
page content, which is what discovery validates and scores.
"""

import logging

import httpx

from opradraft.core.types import SearchHit
from opradraft.providers.http import DEFAULT_TIMEOUT, post_json

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"


class TavilySearch:
    """KeywordSearch backed by the Tavily API."""

    name = "tavily"

    def __init__(self, api_key: str, search_depth: str = "advanced"):
        self.api_key = api_key
        self.search_depth = search_depth

    async def search(
        self,
        query: str,
        max_results: int = 10,
        domain_allowlist: list[str] | None = None,
    ) -> list[SearchHit]:
        payload: dict = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": self.search_depth,
            "include_answer": False,
            "include_raw_content": False,
            "max_results": max_results,
        }
        if domain_allowlist:
            payload["include_domains"] = domain_allowlist

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
            data = await post_json(client, TAVILY_SEARCH_URL, payload, provider="Tavily")

        hits = [
            SearchHit(
                title=item.get("title") or "",
                url=item["url"],
                content=item.get("content") or "",
                score=float(item.get("score") or 0.0),
            )
            for item in data.get("results", [])
            if item.get("url")
        ]
        logger.info("Tavily returned %d results for %r", len(hits), query[:80])
        return hits
