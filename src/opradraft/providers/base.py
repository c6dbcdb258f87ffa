"""Capability interfaces consumed by the pipeline.

Every pipeline component receives the capabilities it needs as constructor
arguments. Concrete providers live next to this module; tests pass
in-memory doubles that satisfy the same protocols.
"""

from typing import Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

from opradraft.core.types import Answer, SearchHit

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@runtime_checkable
class KeywordSearch(Protocol):
    """General web search returning ranked pages with extracted content."""

    async def search(
        self,
        query: str,
        max_results: int = 10,
        domain_allowlist: list[str] | None = None,
    ) -> list[SearchHit]: ...


@runtime_checkable
class AnswerEngine(Protocol):
    """Natural-language research engine returning synthesized content plus citations."""

    async def ask(self, prompt: str) -> Answer: ...


@runtime_checkable
class TextModel(Protocol):
    """LLM capability: free-text generation and schema-constrained classification."""

    async def generate(self, prompt: str, system: str | None = None) -> str: ...

    async def classify(self, prompt: str, schema: type[SchemaT]) -> SchemaT: ...


@runtime_checkable
class Embedder(Protocol):
    """Text embedding. ``embed_batch`` preserves input order."""

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


@runtime_checkable
class BlobStore(Protocol):
    """Binary object storage for generated documents."""

    async def store(self, data: bytes, path: str) -> str: ...

    async def delete(self, url: str) -> None: ...


@runtime_checkable
class PageFetcher(Protocol):
    """Fetch a URL and return its readable text, or None when unusable."""

    async def fetch_text(self, url: str) -> str | None: ...
