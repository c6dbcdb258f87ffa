"""Core domain types shared across all opradraft modules."""

from opradraft.core.categories import OpraCategory, get_categories, get_category
from opradraft.core.errors import (
    MalformedInputError,
    NotFoundError,
    OpraDraftError,
    PreconditionFailedError,
    ProviderError,
)
from opradraft.core.types import (
    Answer,
    ChunkMetadata,
    Citation,
    CustodianInfo,
    DiscoveryResult,
    MatchResult,
    MunicipalityInfo,
    OrdinanceAnalysis,
    RequestData,
    RequestSection,
    SearchHit,
    SearchResult,
    TextChunk,
    ValidationResult,
)

__all__ = [
    "Answer",
    "ChunkMetadata",
    "Citation",
    "CustodianInfo",
    "DiscoveryResult",
    "MalformedInputError",
    "MatchResult",
    "MunicipalityInfo",
    "NotFoundError",
    "OpraCategory",
    "OpraDraftError",
    "OrdinanceAnalysis",
    "PreconditionFailedError",
    "ProviderError",
    "RequestData",
    "RequestSection",
    "SearchHit",
    "SearchResult",
    "TextChunk",
    "ValidationResult",
    "get_categories",
    "get_category",
]
