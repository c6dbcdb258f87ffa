"""API route handlers for opradraft.

POST /api/v1/discover                       find and store a municipality's ordinance
GET  /api/v1/municipalities                 list with discovery status
DELETE /api/v1/municipalities/{id}/reset    drop discovered data
POST /api/v1/ordinances/{id}/process        chunk + index
POST /api/v1/ordinances/{id}/analyze        category analysis
POST /api/v1/opra-requests/...              compose, draft, finalize, track

Domain errors propagate to the exception handlers in ``api.main``.
"""

import logging

from fastapi import APIRouter, Depends

from opradraft.api.schemas import (
    AnalysisResponse,
    CustodianResponse,
    DeleteResponse,
    DiscoverRequest,
    DiscoverResponse,
    DraftRequest,
    ErrorResponse,
    GeneratePdfRequest,
    GenerateRequest,
    MunicipalityResponse,
    OpraRequestResponse,
    PreviewRequest,
    PreviewResponse,
    ProcessResponse,
    ResetResponse,
    StatusUpdateRequest,
    UpdateRequest,
    section_from_domain,
    section_to_domain,
)
from opradraft.pipeline.municipalities import discover_municipality, list_municipalities, reset_municipality
from opradraft.pipeline.requests import (
    RequestView,
    analyze_ordinance,
    create_draft,
    delete_request,
    finalize_request,
    generate_request,
    get_request,
    preview_request,
    update_request,
    update_status,
)
from opradraft.pipeline.services import Services, get_services
from opradraft.pipeline.status import status_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["opra"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Not found"}}
_CONFLICT = {409: {"model": ErrorResponse, "description": "Precondition failed"}}
_PROVIDER = {502: {"model": ErrorResponse, "description": "Provider error"}}


def _request_response(view: RequestView) -> OpraRequestResponse:
    return OpraRequestResponse(
        id=view.id,
        request_number=view.request_number,
        status=view.status,
        municipality_id=view.municipality_id,
        municipality_name=view.municipality_name,
        ordinance_id=view.ordinance_id,
        categories=view.categories,
        request_text=view.request_text,
        sections=[section_from_domain(s) for s in view.sections],
        pdf_url=view.pdf_url,
        custodian=CustodianResponse.from_info(view.custodian),
        created_at=view.created_at,
        updated_at=view.updated_at,
        submitted_at=view.submitted_at,
    )


# ---------------------------------------------------------------------------
# Discovery and municipalities
# ---------------------------------------------------------------------------

@router.post("/discover", response_model=DiscoverResponse, responses=_PROVIDER)
async def discover(request: DiscoverRequest, services: Services = Depends(get_services)):
    """Run ordinance discovery for a municipality. A miss is a normal ``success: false`` response."""
    outcome = await discover_municipality(services, request.municipality, request.county)
    result = outcome.result
    return DiscoverResponse(
        success=result.success,
        municipality_id=outcome.municipality_id,
        ordinance_id=outcome.ordinance_id,
        title=result.title,
        url=result.url,
        confidence=result.confidence,
        strategy=result.strategy,
        reasoning=result.reasoning,
        custodian=CustodianResponse.from_info(outcome.custodian),
    )


@router.get("/municipalities", response_model=list[MunicipalityResponse])
async def municipalities(
    name: str | None = None,
    county: str | None = None,
    services: Services = Depends(get_services),
):
    summaries = await list_municipalities(services, name=name, county=county)
    return [
        MunicipalityResponse(
            id=m.id,
            name=m.name,
            county=m.county,
            state=m.state,
            status=m.status,
            ordinance_count=m.ordinance_count,
            last_discovery_at=m.last_discovery_at,
        )
        for m in summaries
    ]


@router.delete("/municipalities/{municipality_id}/reset", response_model=ResetResponse,
               responses={**_NOT_FOUND, **_CONFLICT})
async def reset(municipality_id: str, services: Services = Depends(get_services)):
    deleted = await reset_municipality(services, municipality_id)
    return ResetResponse(municipality_id=municipality_id, deleted=deleted)


# ---------------------------------------------------------------------------
# Ordinances
# ---------------------------------------------------------------------------

@router.post("/ordinances/{ordinance_id}/process", response_model=ProcessResponse,
             responses={**_NOT_FOUND, **_CONFLICT, **_PROVIDER})
async def process(ordinance_id: str, services: Services = Depends(get_services)):
    result = await services.processor.process(ordinance_id)
    return ProcessResponse(
        ordinance_id=result.ordinance_id,
        chunk_count=result.chunk_count,
        already_processed=result.already_processed,
    )


@router.post("/ordinances/{ordinance_id}/analyze", response_model=AnalysisResponse,
             responses={**_NOT_FOUND, **_CONFLICT, **_PROVIDER})
async def analyze(ordinance_id: str, services: Services = Depends(get_services)):
    analysis = await analyze_ordinance(services, ordinance_id)
    return AnalysisResponse.from_analysis(ordinance_id, analysis)


# ---------------------------------------------------------------------------
# OPRA requests
# ---------------------------------------------------------------------------

@router.post("/opra-requests/preview", response_model=PreviewResponse,
             responses={**_NOT_FOUND, **_CONFLICT, **_PROVIDER})
async def preview(request: PreviewRequest, services: Services = Depends(get_services)):
    composed = await preview_request(
        services, request.ordinance_id, request.selected_categories, request.custom_provisions,
    )
    return PreviewResponse(
        request_text=composed.request_text,
        categories=composed.categories,
        records_summary=composed.records_summary,
        sections=[section_from_domain(s) for s in composed.sections],
    )


@router.post("/opra-requests/generate", response_model=OpraRequestResponse,
             responses={**_NOT_FOUND, **_CONFLICT, **_PROVIDER})
async def generate(request: GenerateRequest, services: Services = Depends(get_services)):
    view = await generate_request(services, request.ordinance_id, request.selected_categories)
    return _request_response(view)


@router.post("/opra-requests/draft", response_model=OpraRequestResponse, responses=_NOT_FOUND)
async def draft(request: DraftRequest, services: Services = Depends(get_services)):
    sections = [section_to_domain(s) for s in request.sections]
    view = await create_draft(services, request.ordinance_id, sections, request.request_text)
    return _request_response(view)


@router.get("/opra-requests/{request_id}", response_model=OpraRequestResponse, responses=_NOT_FOUND)
async def read_request(request_id: str, services: Services = Depends(get_services)):
    return _request_response(await get_request(services, request_id))


@router.patch("/opra-requests/{request_id}", response_model=OpraRequestResponse,
              responses={**_NOT_FOUND, **_CONFLICT})
async def patch_request(request_id: str, request: UpdateRequest, services: Services = Depends(get_services)):
    sections = [section_to_domain(s) for s in request.sections] if request.sections is not None else None
    view = await update_request(services, request_id, sections, request.request_text, request.status)
    return _request_response(view)


@router.delete("/opra-requests/{request_id}", response_model=DeleteResponse,
               responses={**_NOT_FOUND, **_CONFLICT})
async def remove_request(request_id: str, services: Services = Depends(get_services)):
    await delete_request(services, request_id)
    return DeleteResponse()


@router.post("/opra-requests/{request_id}/generate-pdf", response_model=OpraRequestResponse,
             responses={**_NOT_FOUND, **_CONFLICT, **_PROVIDER})
async def generate_pdf(
    request_id: str,
    request: GeneratePdfRequest | None = None,
    services: Services = Depends(get_services),
):
    text = request.request_text if request else None
    return _request_response(await finalize_request(services, request_id, text))


@router.post("/opra-requests/{request_id}/status", response_model=OpraRequestResponse,
             responses={**_NOT_FOUND, **_CONFLICT})
async def change_status(request_id: str, request: StatusUpdateRequest, services: Services = Depends(get_services)):
    return _request_response(await update_status(services, request_id, request.status))


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@router.get("/status")
async def system_status(services: Services = Depends(get_services)):
    return await status_report(services)
