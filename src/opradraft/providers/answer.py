"""Perplexity answer engine.

OpenAI-compatible chat completions against an online model. Citations
arrive either as a list of URL strings or as {url, title} objects depending
on the API version; both shapes are normalized into ``Citation``.
"""

import logging

import httpx

from opradraft.core.errors import ProviderError
from opradraft.core.types import Answer, Citation
from opradraft.providers.http import DEFAULT_TIMEOUT, post_json

logger = logging.getLogger(__name__)

PERPLEXITY_CHAT_URL = "https://api.perplexity.ai/chat/completions"


def _parse_citations(data: dict) -> list[Citation]:
    raw = data.get("citations") or []
    if not raw:
        raw = [{"url": r.get("url"), "title": r.get("title", "")} for r in data.get("search_results") or []]

    citations: list[Citation] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, str):
            url, title = item, ""
        elif isinstance(item, dict):
            url, title = item.get("url") or "", item.get("title") or ""
        else:
            continue
        if url and url not in seen:
            seen.add(url)
            citations.append(Citation(url=url, title=title))
    return citations


class PerplexityAnswerEngine:
    """AnswerEngine backed by the Perplexity API."""

    name = "perplexity"

    def __init__(
        self,
        api_key: str,
        model: str = "sonar",
        system_prompt: str = "",
        max_tokens: int = 4000,
        temperature: float = 0.2,
    ):
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def ask(self, prompt: str) -> Answer:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "return_citations": True,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
            data = await post_json(client, PERPLEXITY_CHAT_URL, payload, provider="Perplexity", headers=headers)

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected Perplexity response structure: {e}", "Perplexity") from e

        citations = _parse_citations(data)
        logger.info("Perplexity answered with %d chars and %d citations", len(content), len(citations))
        return Answer(content=content, citations=citations)
