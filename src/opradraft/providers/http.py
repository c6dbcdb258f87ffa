"""Shared JSON-over-HTTP call with exponential backoff.

Retries on 429, 5xx, timeouts, and connection errors. Any other HTTP
status fails immediately. Exhausted retries surface as ProviderError so
callers deal with one failure type regardless of the backend.
"""

import asyncio
import logging

import httpx

from opradraft.core.errors import ProviderError

logger = logging.getLogger(__name__)

# Fail fast on connect, generous on read (search and LLM generation are slow)
DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=5.0)
MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    provider: str,
    headers: dict | None = None,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
) -> dict:
    """POST ``payload`` and return the decoded JSON body."""
    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if not _is_retryable(status):
                body = getattr(e.response, "text", "") or ""
                raise ProviderError(f"{provider} error {status}: {body[:200]}", provider) from e
            last_error = e
            reason = str(status)
        except httpx.TransportError as e:
            last_error = e
            reason = "timeout" if isinstance(e, httpx.TimeoutException) else type(e).__name__
        except ValueError as e:
            raise ProviderError(f"{provider} returned a non-JSON body", provider) from e

        if attempt < max_retries:
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s %s (attempt %d/%d), retrying in %.1fs",
                provider, reason, attempt + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)

    raise ProviderError(f"{provider} failed after {max_retries + 1} attempts: {last_error}", provider)
