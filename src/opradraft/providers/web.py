"""Page fetcher: URL → readable text.

HTML is flattened with BeautifulSoup (tables become pipe-delimited rows,
navigation chrome is dropped). Binary documents we cannot read as text
(PDF without a text layer, images) are reported as unusable; OCR is out
of scope.
"""

import logging
import re

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=5.0)
USER_AGENT = "opradraft/0.1 (+municipal records research)"
MAX_PAGE_CHARS = 500_000

_STRIP_TAGS = ["script", "style", "nav", "header", "footer", "noscript", "form"]


def html_to_text(html: str) -> str:
    """Convert HTML to clean text, preserving table structure."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()

    for table in soup.find_all("table"):
        rows = []
        for tr in table.find_all("tr"):
            cells = [td.get_text(strip=True) for td in tr.find_all(["td", "th"])]
            rows.append(" | ".join(cells))
        table.replace_with("\n".join(rows) + "\n")

    text = soup.get_text(separator="\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class HttpPageFetcher:
    """PageFetcher over plain HTTP GET."""

    async def fetch_text(self, url: str) -> str | None:
        try:
            async with httpx.AsyncClient(
                timeout=FETCH_TIMEOUT, follow_redirects=True, headers={"User-Agent": USER_AGENT},
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Fetch failed for %s: %s", url, e)
            return None

        content_type = resp.headers.get("content-type", "").lower()
        if "html" in content_type:
            text = html_to_text(resp.text[:MAX_PAGE_CHARS])
        elif content_type.startswith("text/"):
            text = resp.text[:MAX_PAGE_CHARS].strip()
        else:
            logger.info("Skipping non-text content at %s (%s)", url, content_type or "unknown")
            return None

        logger.info("Fetched %d chars from %s", len(text), url)
        return text or None
