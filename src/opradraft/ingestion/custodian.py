"""Best-effort lookup of a municipality's OPRA records custodian.

Used only to address the request header; every failure degrades to None
and the composer falls back to a generic custodian line.
"""

import logging
import re

import httpx

from opradraft.core.errors import ProviderError
from opradraft.core.types import CustodianInfo
from opradraft.providers.base import KeywordSearch

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
# Capitalized name right after "Clerk:" / "Custodian" (keyword case-insensitive, name not)
NAME_PATTERN = re.compile(r"(?i:clerk|custodian)[:\s]+([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*)")


def extract_custodian_info(content: str) -> CustodianInfo | None:
    """Contact details from clerk/OPRA page text. None unless an email or phone is present."""
    email = EMAIL_PATTERN.search(content)
    phone = PHONE_PATTERN.search(content)
    if not email and not phone:
        return None

    info = CustodianInfo(
        email=email.group(0).rstrip(".") if email else None,
        phone=phone.group(0).strip() if phone else None,
    )
    name = NAME_PATTERN.search(content)
    if name:
        info.name = name.group(1)
    return info


async def find_custodian(
    search: KeywordSearch,
    municipality: str,
    state: str = "New Jersey",
    state_abbr: str = "NJ",
) -> CustodianInfo | None:
    """Search government sites for the municipal clerk's contact details."""
    query = f"{municipality} {state} municipal clerk contact OPRA custodian email phone"
    allowlist = [".gov", f".{state_abbr.lower()}.us"]
    try:
        hits = await search.search(query, max_results=5, domain_allowlist=allowlist)
    except (ProviderError, httpx.HTTPError) as e:
        logger.warning("Custodian search failed for %s: %s", municipality, e)
        return None

    for hit in hits:
        info = extract_custodian_info(hit.content)
        if info is not None:
            logger.info("Found custodian contact for %s at %s", municipality, hit.url,
                        extra={"municipality": municipality})
            return info
    return None
