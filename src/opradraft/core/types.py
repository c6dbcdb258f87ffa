"""Domain types for the opradraft ordinance pipeline.

All shared dataclasses live here to prevent circular imports and establish
a single source of truth for the domain model. ORM rows (storage.models) and
API schemas (api.schemas) are bridged to these in the pipeline layer.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Union

# Ordered confidence tiers: low < medium < high
CONFIDENCE_RANK = {"low": 0, "medium": 1, "high": 2}


def confidence_at_least(confidence: str | None, minimum: str) -> bool:
    """True when ``confidence`` is at or above ``minimum`` in tier order."""
    if confidence is None:
        return False
    return CONFIDENCE_RANK.get(confidence, -1) >= CONFIDENCE_RANK[minimum]


# ---------------------------------------------------------------------------
# Validation / matching
# ---------------------------------------------------------------------------

@dataclass
class ValidationResult:
    """Heuristic verdict on whether text is a rent-control ordinance."""

    is_valid: bool
    confidence: str  # high, medium, low
    score: int
    issues: list[str] = field(default_factory=list)


@dataclass
class MatchResult:
    """Verdict on whether text pertains to the requested jurisdiction."""

    is_match: bool
    confidence: int  # 0..100
    issues: list[str] = field(default_factory=list)


@dataclass
class MunicipalityInfo:
    """A municipality identity as parsed from text or supplied by a caller."""

    name: str
    county: str | None = None
    state: str = "NJ"
    type: str = ""


# ---------------------------------------------------------------------------
# Search provider results
# ---------------------------------------------------------------------------

@dataclass
class SearchHit:
    """A single keyword-search result."""

    title: str
    url: str
    content: str
    score: float = 0.0


@dataclass
class Citation:
    url: str
    title: str = ""


@dataclass
class Answer:
    """Synthesized answer-engine response."""

    content: str
    citations: list[Citation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

@dataclass
class DiscoveryResult:
    """Outcome of one discovery strategy, or of the whole fallback chain.

    A failed result is a normal negative answer, not an error. ``reasoning``
    accumulates human-readable notes from every strategy that was attempted.
    """

    success: bool
    content: str | None = None
    url: str | None = None
    title: str | None = None
    confidence: str | None = None
    strategy: str | None = None
    reasoning: list[str] = field(default_factory=list)


@dataclass
class OrdinanceDetails:
    """Metadata extracted from discovered ordinance text."""

    title: str
    code: str | None
    full_text: str
    source_url: str | None


@dataclass
class CustodianInfo:
    """Records custodian contact (best-effort scrape, used for the request header)."""

    name: str = "Municipal Clerk"
    title: str = "Municipal Clerk / OPRA Custodian"
    email: str | None = None
    phone: str | None = None
    address: str | None = None


# ---------------------------------------------------------------------------
# Chunks and retrieval
# ---------------------------------------------------------------------------

@dataclass
class ChunkMetadata:
    """Position and section labels attached to each chunk."""

    chunk_index: int
    start_char: int
    end_char: int
    section_number: str | None = None
    section_title: str | None = None


@dataclass
class TextChunk:
    """A chunk of ordinance text ready for embedding."""

    text: str
    metadata: ChunkMetadata


@dataclass
class SearchResult:
    """A retrieved chunk with its similarity to the query."""

    content: str
    similarity: float
    ordinance_id: str
    chunk_index: int = 0
    section_number: str | None = None
    section_title: str | None = None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@dataclass
class SectionFinding:
    """Per-section classification outcome. ``error`` is set when the section was skipped."""

    chunk_index: int
    section_number: str
    categories: dict[str, str] = field(default_factory=dict)  # category_id -> relevance
    key_provisions: list[str] = field(default_factory=list)
    has_rent_control_board: bool = False
    has_complaint_process: bool = False
    has_enforcement_mechanism: bool = False
    error: str | None = None


@dataclass
class OrdinanceAnalysis:
    """Document-level aggregation of section findings."""

    relevant_categories: list[str]
    total_sections: int
    has_rent_control_board: bool = False
    has_complaint_process: bool = False
    has_enforcement_mechanism: bool = False
    key_provisions: list[str] = field(default_factory=list)
    supplemental_categories: list[str] = field(default_factory=list)
    findings: list[SectionFinding] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed_sections(self) -> list[str]:
        return [f.section_number for f in self.findings if f.error]


# ---------------------------------------------------------------------------
# Request composition
# ---------------------------------------------------------------------------

@dataclass
class OrdinanceInfo:
    title: str
    code: str | None = None
    effective_date: date | None = None


@dataclass
class RequestData:
    """Everything the composer needs. Pure data, no provider handles."""

    municipality: MunicipalityInfo
    ordinance: OrdinanceInfo
    selected_categories: list[str]
    records_summary: dict[str, list[str]] = field(default_factory=dict)
    custodian: CustodianInfo | None = None
    request_number: str | None = None


@dataclass(frozen=True)
class HeaderSection:
    text: str
    kind: Literal["header"] = "header"


@dataclass(frozen=True)
class CategorySection:
    category_id: str
    title: str
    bullets: tuple[str, ...]
    kind: Literal["category"] = "category"


@dataclass(frozen=True)
class CustomSection:
    title: str
    body: str
    kind: Literal["custom"] = "custom"


@dataclass(frozen=True)
class FooterSection:
    text: str
    kind: Literal["footer"] = "footer"


RequestSection = Union[HeaderSection, CategorySection, CustomSection, FooterSection]


@dataclass
class ProcessResult:
    """Outcome of chunking + indexing an ordinance."""

    ordinance_id: str
    chunk_count: int
    already_processed: bool = False
