"""Pydantic request/response models for the opradraft API.

These are the API contract, decoupled from the internal domain dataclasses.
Route handlers bridge the two with the ``from_*`` / ``to_domain`` helpers.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from opradraft.core.types import (
    CategorySection,
    CustodianInfo,
    CustomSection,
    FooterSection,
    HeaderSection,
    OrdinanceAnalysis,
    RequestSection,
)


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# ---------------------------------------------------------------------------
# Request sections (tagged variant)
# ---------------------------------------------------------------------------

class HeaderSectionModel(BaseModel):
    kind: Literal["header"] = "header"
    text: str


class CategorySectionModel(BaseModel):
    kind: Literal["category"] = "category"
    category_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    bullets: list[str] = []


class CustomSectionModel(BaseModel):
    kind: Literal["custom"] = "custom"
    title: str = Field(..., min_length=1)
    body: str


class FooterSectionModel(BaseModel):
    kind: Literal["footer"] = "footer"
    text: str


SectionModel = Annotated[
    Union[HeaderSectionModel, CategorySectionModel, CustomSectionModel, FooterSectionModel],
    Field(discriminator="kind"),
]


def section_to_domain(model: SectionModel) -> RequestSection:
    if isinstance(model, HeaderSectionModel):
        return HeaderSection(text=model.text)
    if isinstance(model, CategorySectionModel):
        return CategorySection(category_id=model.category_id, title=model.title, bullets=tuple(model.bullets))
    if isinstance(model, CustomSectionModel):
        return CustomSection(title=model.title, body=model.body)
    return FooterSection(text=model.text)


def section_from_domain(section: RequestSection) -> SectionModel:
    if isinstance(section, HeaderSection):
        return HeaderSectionModel(text=section.text)
    if isinstance(section, CategorySection):
        return CategorySectionModel(category_id=section.category_id, title=section.title, bullets=list(section.bullets))
    if isinstance(section, CustomSection):
        return CustomSectionModel(title=section.title, body=section.body)
    return FooterSectionModel(text=section.text)


# ---------------------------------------------------------------------------
# Discovery and municipalities
# ---------------------------------------------------------------------------

class DiscoverRequest(BaseModel):
    """Request body for POST /api/v1/discover."""

    municipality: str = Field(..., min_length=2, max_length=200, examples=["Jersey City"])
    county: str | None = Field(None, max_length=100, examples=["Hudson"])


class CustodianResponse(BaseModel):
    name: str
    title: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @classmethod
    def from_info(cls, info: CustodianInfo | None) -> "CustodianResponse | None":
        if info is None:
            return None
        return cls(name=info.name, title=info.title, email=info.email, phone=info.phone, address=info.address)


class DiscoverResponse(BaseModel):
    success: bool
    municipality_id: str
    ordinance_id: str | None = None
    title: str | None = None
    url: str | None = None
    confidence: str | None = None
    strategy: str | None = None
    reasoning: list[str] = []
    custodian: CustodianResponse | None = None


class MunicipalityResponse(BaseModel):
    id: str
    name: str
    county: str | None = None
    state: str
    status: Literal["has_ordinance", "no_ordinance", "not_scraped"]
    ordinance_count: int = 0
    last_discovery_at: datetime | None = None


class ResetResponse(BaseModel):
    municipality_id: str
    deleted: dict[str, int]


# ---------------------------------------------------------------------------
# Ordinances
# ---------------------------------------------------------------------------

class ProcessResponse(BaseModel):
    ordinance_id: str
    chunk_count: int
    already_processed: bool = False


class AnalysisResponse(BaseModel):
    ordinance_id: str
    relevant_categories: list[str]
    total_sections: int
    has_rent_control_board: bool = False
    has_complaint_process: bool = False
    has_enforcement_mechanism: bool = False
    key_provisions: list[str] = []
    supplemental_categories: list[str] = []
    failed_sections: list[str] = []
    warnings: list[str] = []

    @classmethod
    def from_analysis(cls, ordinance_id: str, analysis: OrdinanceAnalysis) -> "AnalysisResponse":
        return cls(
            ordinance_id=ordinance_id,
            relevant_categories=analysis.relevant_categories,
            total_sections=analysis.total_sections,
            has_rent_control_board=analysis.has_rent_control_board,
            has_complaint_process=analysis.has_complaint_process,
            has_enforcement_mechanism=analysis.has_enforcement_mechanism,
            key_provisions=analysis.key_provisions,
            supplemental_categories=analysis.supplemental_categories,
            failed_sections=analysis.failed_sections,
            warnings=analysis.warnings,
        )


# ---------------------------------------------------------------------------
# OPRA requests
# ---------------------------------------------------------------------------

class PreviewRequest(BaseModel):
    ordinance_id: str
    selected_categories: list[str] | None = None
    custom_provisions: list[str] | None = None


class PreviewResponse(BaseModel):
    request_text: str
    categories: list[str]
    records_summary: dict[str, list[str]]
    sections: list[SectionModel]


class GenerateRequest(BaseModel):
    ordinance_id: str
    selected_categories: list[str] | None = None


class DraftRequest(BaseModel):
    ordinance_id: str
    sections: list[SectionModel] = Field(..., min_length=1)
    request_text: str | None = None


class UpdateRequest(BaseModel):
    sections: list[SectionModel] | None = None
    request_text: str | None = None
    status: Literal["DRAFT", "READY"] | None = None


class GeneratePdfRequest(BaseModel):
    request_text: str | None = None


class StatusUpdateRequest(BaseModel):
    status: Literal["READY", "SUBMITTED", "ACKNOWLEDGED", "FULFILLED", "DENIED", "APPEALED"]


class OpraRequestResponse(BaseModel):
    id: str
    request_number: str
    status: str
    municipality_id: str
    municipality_name: str
    ordinance_id: str
    categories: list[str]
    request_text: str
    sections: list[SectionModel] = []
    pdf_url: str | None = None
    custodian: CustodianResponse | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None


class DeleteResponse(BaseModel):
    success: bool = True
