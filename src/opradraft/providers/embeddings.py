"""Embedding generation via an OpenAI-compatible /embeddings endpoint.

Uses text-embedding-3-small (1536d) by default. Vectors come back in
input order (the API's ``index`` field is honored), are dimension-checked,
and zero vectors are rejected: a bad vector is a provider failure, never
something to store.
"""

import logging

import httpx
import mlflow
from mlflow.entities import SpanType

from opradraft.config import Settings
from opradraft.core.errors import ProviderError
from opradraft.providers.http import post_json

logger = logging.getLogger(__name__)

EMBEDDING_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=5.0)
MAX_INPUT_CHARS = 8000


class OpenAIEmbedder:
    """Embedder backed by an OpenAI-compatible embeddings API."""

    name = "openai-embeddings"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        base_url: str = "https://api.openai.com/v1",
    ):
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.url = f"{base_url.rstrip('/')}/embeddings"

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIEmbedder":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dim,
            base_url=settings.openai_base_url,
        )

    def _check(self, vectors: list[list[float]], expected: int) -> list[list[float]]:
        if len(vectors) != expected:
            raise ProviderError(
                f"Embedding API returned {len(vectors)} vectors for {expected} inputs", self.name,
            )
        for i, vec in enumerate(vectors):
            if len(vec) != self.dimensions:
                raise ProviderError(
                    f"Embedding {i} has dimension {len(vec)}, expected {self.dimensions}", self.name,
                )
            if not any(vec):
                raise ProviderError(f"Embedding {i} is a zero vector", self.name)
        return vectors

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` in one request, preserving order."""
        if not texts:
            return []

        payload = {
            "input": [t[:MAX_INPUT_CHARS] for t in texts],
            "model": self.model,
            "encoding_format": "float",
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        with mlflow.start_span(name="embed_batch", span_type=SpanType.EMBEDDING) as span:
            span.set_inputs({"batch_size": len(texts), "model": self.model})
            async with httpx.AsyncClient(timeout=EMBEDDING_TIMEOUT) as client:
                data = await post_json(client, self.url, payload, provider="Embeddings", headers=headers)

            try:
                items = sorted(data["data"], key=lambda item: item.get("index", 0))
                vectors = [item["embedding"] for item in items]
            except (KeyError, TypeError) as e:
                raise ProviderError(f"Unexpected embeddings response structure: {e}", self.name) from e

            vectors = self._check(vectors, len(texts))
            span.set_outputs({"embedding_dim": self.dimensions, "count": len(vectors)})

        logger.debug("Embedded %d texts (%dd)", len(texts), self.dimensions)
        return vectors

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]
