"""Source validator: is this text actually a rent-control ordinance?

Additive lexical scoring, no I/O, deterministic for identical input:

    +40  mentions rent control / stabilization / regulation
    +30  has legal structure (section, article, chapter or § followed by a number)
    +20  longer than 2000 characters
    +10  no issues recorded

Search-results pages, cookie banners and 404s are recorded as issues, which
forfeits the no-issues bonus. Score > 80 is high confidence, > 50 medium.
"""

import re

from opradraft.core.types import ValidationResult

RENT_CONTROL_PATTERN = re.compile(r"rent\s+(?:control|stabilization|regulation)", re.IGNORECASE)
LEGAL_STRUCTURE_PATTERN = re.compile(r"(?:\bsection|\barticle|\bchapter|§)\s*\d+", re.IGNORECASE)

SUSPICIOUS_MARKERS = (
    "search results",
    "no results found",
    "cookie policy",
    "page not found",
    "404",
)

MIN_CONTENT_LENGTH = 1000
LONG_CONTENT_LENGTH = 2000

# Tier cut-offs; empirically chosen, pending calibration against labeled pages
HIGH_CONFIDENCE_SCORE = 80
VALID_SCORE = 50


def confidence_tier(score: int) -> str:
    if score > HIGH_CONFIDENCE_SCORE:
        return "high"
    if score > VALID_SCORE:
        return "medium"
    return "low"


def validate_ordinance_content(content: str) -> ValidationResult:
    """Score ``content`` for how likely it is to be rent-control ordinance text."""
    issues: list[str] = []
    score = 0
    lower = content.lower()

    if RENT_CONTROL_PATTERN.search(content):
        score += 40
    else:
        issues.append("No rent control keywords found")

    if LEGAL_STRUCTURE_PATTERN.search(content):
        score += 30
    else:
        issues.append("No legal document structure detected")

    if len(content) > LONG_CONTENT_LENGTH:
        score += 20
    elif len(content) < MIN_CONTENT_LENGTH:
        issues.append(f"Content too short ({len(content)} chars)")

    for marker in SUSPICIOUS_MARKERS:
        if marker in lower:
            issues.append(f"Contains suspicious text: {marker!r}")

    if not issues:
        score += 10

    return ValidationResult(
        is_valid=score > VALID_SCORE,
        confidence=confidence_tier(score),
        score=score,
        issues=issues,
    )


def is_search_results_stub(content: str) -> bool:
    """True for pages that are obviously a search listing rather than a document."""
    lower = content.lower()
    return "search results" in lower or "no results found" in lower
