"""LLM client: OpenAI primary, NVIDIA NIM fallback.

Both providers expose OpenAI-compatible chat completions endpoints. The
client implements the TextModel capability:
  1. generate(): free text (e.g. the VALID_ORDINANCE check)
  2. classify(): JSON output validated against a pydantic schema
     (section analysis, records summaries, answer-engine validation)
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import TypeVar

import httpx
import mlflow
from mlflow.entities import SpanType
from pydantic import BaseModel, ValidationError

from opradraft.config import Settings
from opradraft.core.errors import ProviderError
from opradraft.observability.tracing import log_metrics
from opradraft.providers.http import post_json

logger = logging.getLogger(__name__)

# Granular timeouts: fail fast on connect, generous on read (LLM generation)
LLM_TIMEOUT = httpx.Timeout(connect=10.0, read=90.0, write=10.0, pool=5.0)

NVIDIA_CHAT_URL = "https://integrate.api.nvidia.com/v1/chat/completions"

MAX_RETRIES = 2
BASE_DELAY = 1.0

SchemaT = TypeVar("SchemaT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Circuit breaker: skip a provider that is already failing.
# States: CLOSED (normal) → OPEN (failing) → HALF_OPEN (testing recovery)
# ---------------------------------------------------------------------------

@dataclass
class CircuitBreaker:
    """Per-provider circuit breaker for LLM API calls."""

    failure_threshold: int = 5
    reset_seconds: int = 60
    _failure_count: int = field(default=0, repr=False)
    _last_failure_time: float = field(default=0.0, repr=False)
    _state: str = field(default="closed", repr=False)  # closed, open, half_open

    @property
    def state(self) -> str:
        if self._state == "open":
            if time.monotonic() - self._last_failure_time >= self.reset_seconds:
                self._state = "half_open"
        return self._state

    def allow_request(self) -> bool:
        """Closed and half-open let requests through; open does not."""
        return self.state != "open"

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._failure_count >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN after %d failures (reset in %ds)",
                self._failure_count, self.reset_seconds,
            )


@dataclass
class ChatProvider:
    """One OpenAI-compatible chat endpoint in the fallback chain."""

    name: str
    url: str
    api_key: str
    model: str
    json_mode: bool = True
    breaker: CircuitBreaker = field(default_factory=CircuitBreaker)


def _parse_llm_content(content: str) -> dict:
    """Parse JSON from LLM output, tolerating markdown fences and surrounding prose."""
    text = content.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start:end + 1])


async def _call_provider(
    client: httpx.AsyncClient,
    provider: ChatProvider,
    payload: dict,
) -> str | None:
    """Call one provider; return message content, or None if it failed or is tripped."""
    if not provider.breaker.allow_request():
        logger.info("Circuit breaker OPEN for %s, skipping", provider.name)
        return None

    payload = {**payload, "model": provider.model}
    if provider.json_mode and payload.pop("_json", False):
        payload["response_format"] = {"type": "json_object"}
    else:
        payload.pop("_json", None)

    headers = {
        "Authorization": f"Bearer {provider.api_key}",
        "Content-Type": "application/json",
    }

    with mlflow.start_span(name=f"llm_{provider.name.lower()}", span_type=SpanType.CHAT_MODEL) as span:
        span.set_inputs({"provider": provider.name, "model": provider.model})
        try:
            data = await post_json(
                client, provider.url, payload, provider=provider.name, headers=headers,
                max_retries=MAX_RETRIES, base_delay=BASE_DELAY,
            )
            content = data["choices"][0]["message"]["content"] or ""
        except ProviderError as e:
            logger.error("%s failed: %s", provider.name, e)
            provider.breaker.record_failure()
            span.set_outputs({"error": str(e)})
            return None
        except (KeyError, IndexError, TypeError) as e:
            logger.error("Unexpected %s response structure: %s", provider.name, e)
            provider.breaker.record_failure()
            span.set_outputs({"error": f"parse_error: {e}"})
            return None

        provider.breaker.record_success()
        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        span.set_outputs({
            "content_chars": len(content),
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
        })
        if prompt_tokens or completion_tokens:
            key = provider.name.lower()
            log_metrics({
                f"{key}_prompt_tokens": float(prompt_tokens),
                f"{key}_completion_tokens": float(completion_tokens),
            })
        logger.info("LLM response from %s (model=%s)", provider.name, provider.model)
        return content


class ChatModel:
    """TextModel over an ordered chain of chat providers."""

    def __init__(self, providers: list[ChatProvider], temperature: float = 0.1, max_tokens: int = 2000):
        self.providers = providers
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatModel":
        providers = []
        if settings.openai_api_key:
            providers.append(ChatProvider(
                name="OpenAI",
                url=f"{settings.openai_base_url.rstrip('/')}/chat/completions",
                api_key=settings.openai_api_key,
                model=settings.chat_model,
            ))
        if settings.nvidia_api_key:
            providers.append(ChatProvider(
                name="NVIDIA",
                url=NVIDIA_CHAT_URL,
                api_key=settings.nvidia_api_key,
                model=settings.nvidia_chat_model,
                json_mode=False,
            ))
        return cls(providers)

    @property
    def configured(self) -> bool:
        return bool(self.providers)

    async def _complete(self, messages: list[dict], json_output: bool = False) -> str:
        payload = {
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "_json": json_output,
        }
        async with httpx.AsyncClient(timeout=LLM_TIMEOUT) as client:
            for provider in self.providers:
                content = await _call_provider(client, provider, payload)
                if content is not None:
                    return content
                logger.warning("%s failed, trying next provider", provider.name)

        raise ProviderError("All LLM providers failed", "llm")

    async def generate(self, prompt: str, system: str | None = None) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return await self._complete(messages)

    async def classify(self, prompt: str, schema: type[SchemaT]) -> SchemaT:
        messages = [
            {"role": "system", "content": "You respond only with a single JSON object."},
            {"role": "user", "content": prompt},
        ]
        content = await self._complete(messages, json_output=True)
        try:
            return schema.model_validate(_parse_llm_content(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ProviderError(f"LLM output did not match {schema.__name__}: {e}", "llm") from e
