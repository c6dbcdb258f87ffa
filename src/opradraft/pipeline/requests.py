"""OPRA request workflows: analysis, preview, drafts, finalization, status.

Every workflow loads what it needs through the session factory on
``Services``, works on plain domain data, and writes back in one commit.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import select

from opradraft.core.errors import NotFoundError, ProviderError
from opradraft.core.types import (
    CategorySection,
    CustodianInfo,
    MunicipalityInfo,
    OrdinanceAnalysis,
    OrdinanceInfo,
    RequestData,
    RequestSection,
)
from opradraft.drafting.composer import section_from_dict, section_to_dict
from opradraft.drafting.lifecycle import RequestStatus, assert_draft, check_transition, generate_request_number
from opradraft.drafting.pdf import render_request_pdf
from opradraft.ingestion.matcher import slugify
from opradraft.observability.prompts import log_prompt_to_run
from opradraft.observability.tracing import start_run
from opradraft.pipeline.services import Services
from opradraft.storage.models import Custodian, Municipality, OpraRequest, Ordinance

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 5


@dataclass
class ComposedRequest:
    """A composed but unsaved request."""

    request_text: str
    categories: list[str]
    records_summary: dict[str, list[str]]
    sections: list[RequestSection]


@dataclass
class RequestView:
    """A stored request as returned to callers."""

    id: str
    request_number: str
    status: str
    municipality_id: str
    municipality_name: str
    ordinance_id: str
    categories: list[str]
    request_text: str
    sections: list[RequestSection] = field(default_factory=list)
    pdf_url: str | None = None
    custodian: CustodianInfo | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

def _custodian_info(row: Custodian | None) -> CustodianInfo | None:
    if row is None:
        return None
    return CustodianInfo(name=row.name, title=row.title or "OPRA Custodian", email=row.email,
                         phone=row.phone, address=row.address)


async def _load_ordinance(session, ordinance_id: str) -> tuple[Ordinance, Municipality, Custodian | None]:
    ordinance = await session.get(Ordinance, ordinance_id)
    if ordinance is None:
        raise NotFoundError(f"Ordinance {ordinance_id} not found")
    municipality = await session.get(Municipality, ordinance.municipality_id)
    custodian = (await session.execute(
        select(Custodian).where(Custodian.municipality_id == municipality.id).order_by(Custodian.created_at.desc())
    )).scalars().first()
    return ordinance, municipality, custodian


async def _load_request(session, request_id: str) -> OpraRequest:
    row = await session.get(OpraRequest, request_id)
    if row is None:
        raise NotFoundError(f"OPRA request {request_id} not found")
    return row


def _request_data(
    ordinance: Ordinance,
    municipality: Municipality,
    custodian: Custodian | None,
    categories: list[str],
    records_summary: dict[str, list[str]],
    request_number: str | None = None,
) -> RequestData:
    return RequestData(
        municipality=MunicipalityInfo(name=municipality.name, county=municipality.county, state=municipality.state),
        ordinance=OrdinanceInfo(title=ordinance.title, code=ordinance.code, effective_date=ordinance.effective_date),
        selected_categories=list(categories),
        records_summary=records_summary,
        custodian=_custodian_info(custodian),
        request_number=request_number,
    )


def _sections_of(row: OpraRequest) -> list[RequestSection]:
    raw = (row.customizations or {}).get("sections") or []
    return [section_from_dict(s) for s in raw]


async def _view(session, row: OpraRequest) -> RequestView:
    # Server-side timestamps are not loaded after flush
    await session.refresh(row)
    municipality = await session.get(Municipality, row.municipality_id)
    custodian = await session.get(Custodian, row.custodian_id) if row.custodian_id else None
    return RequestView(
        id=row.id,
        request_number=row.request_number,
        status=row.status,
        municipality_id=row.municipality_id,
        municipality_name=municipality.name if municipality else "",
        ordinance_id=row.ordinance_id,
        categories=list(row.categories or []),
        request_text=row.request_text,
        sections=_sections_of(row),
        pdf_url=row.pdf_url,
        custodian=_custodian_info(custodian),
        created_at=row.created_at,
        updated_at=row.updated_at,
        submitted_at=row.submitted_at,
    )


async def _unique_request_number(session, rng: random.Random | None = None) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = generate_request_number(rng=rng)
        taken = await session.execute(select(OpraRequest.id).where(OpraRequest.request_number == number))
        if taken.first() is None:
            return number
    raise ProviderError("Could not allocate a unique request number", "database")


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def _analyzer(services: Services):
    if services.analyzer is None:
        raise ProviderError("No chat model configured for category analysis", "llm")
    return services.analyzer


async def _ensure_ordinance(services: Services, ordinance_id: str) -> None:
    session = await services.session_factory()
    try:
        if await session.get(Ordinance, ordinance_id) is None:
            raise NotFoundError(f"Ordinance {ordinance_id} not found")
    finally:
        await session.close()


async def analyze_ordinance(services: Services, ordinance_id: str) -> OrdinanceAnalysis:
    analyzer = _analyzer(services)
    await _ensure_ordinance(services, ordinance_id)
    with start_run(f"analyze_{ordinance_id[:30]}", ordinance_id=ordinance_id):
        log_prompt_to_run("section_analysis")
        return await analyzer.analyze_ordinance(ordinance_id)


async def generate_records_summary(services: Services, ordinance_id: str, category_ids: list[str]) -> dict[str, list[str]]:
    analyzer = _analyzer(services)
    await _ensure_ordinance(services, ordinance_id)
    return await analyzer.generate_records_summary(ordinance_id, category_ids)


async def _categories_and_summary(
    services: Services,
    ordinance_id: str,
    selected: list[str] | None,
) -> tuple[list[str], dict[str, list[str]]]:
    """Selected categories (or the analyzed set when none given) and their records."""
    if not selected:
        analysis = await analyze_ordinance(services, ordinance_id)
        selected = analysis.relevant_categories
    summary = await generate_records_summary(services, ordinance_id, selected)
    return list(selected), summary


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

async def preview_request(
    services: Services,
    ordinance_id: str,
    selected_categories: list[str] | None = None,
    custom_provisions: list[str] | None = None,
) -> ComposedRequest:
    """Compose a request without saving anything."""
    categories, summary = await _categories_and_summary(services, ordinance_id, selected_categories)

    session = await services.session_factory()
    try:
        ordinance, municipality, custodian = await _load_ordinance(session, ordinance_id)
    finally:
        await session.close()

    data = _request_data(ordinance, municipality, custodian, categories, summary)
    sections = services.composer.compose_sections(data)
    if custom_provisions:
        text = services.composer.compose_customized(data, custom_provisions)
    else:
        text = services.composer.render_sections(sections)
    return ComposedRequest(request_text=text, categories=categories, records_summary=summary, sections=sections)


async def generate_request(
    services: Services,
    ordinance_id: str,
    selected_categories: list[str] | None = None,
) -> RequestView:
    """Analyze if needed, compose, and save as a DRAFT."""
    categories, summary = await _categories_and_summary(services, ordinance_id, selected_categories)

    session = await services.session_factory()
    try:
        ordinance, municipality, custodian = await _load_ordinance(session, ordinance_id)
        number = await _unique_request_number(session)
        data = _request_data(ordinance, municipality, custodian, categories, summary, request_number=number)
        sections = services.composer.compose_sections(data)
        row = OpraRequest(
            request_number=number,
            municipality_id=municipality.id,
            ordinance_id=ordinance.id,
            custodian_id=custodian.id if custodian else None,
            status=RequestStatus.DRAFT.value,
            categories=categories,
            customizations={"sections": [section_to_dict(s) for s in sections]},
            request_text=services.composer.render_sections(sections),
        )
        session.add(row)
        await session.commit()
        view = await _view(session, row)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()

    logger.info("Generated OPRA request %s for ordinance %s", number, ordinance_id,
                extra={"ordinance_id": ordinance_id, "request_id": view.id})
    return view


async def create_draft(
    services: Services,
    ordinance_id: str,
    sections: list[RequestSection],
    request_text: str | None = None,
) -> RequestView:
    """Save an edited section list as a new DRAFT."""
    session = await services.session_factory()
    try:
        ordinance, municipality, custodian = await _load_ordinance(session, ordinance_id)
        row = OpraRequest(
            request_number=await _unique_request_number(session),
            municipality_id=municipality.id,
            ordinance_id=ordinance.id,
            custodian_id=custodian.id if custodian else None,
            status=RequestStatus.DRAFT.value,
            categories=[s.category_id for s in sections if isinstance(s, CategorySection)],
            customizations={"sections": [section_to_dict(s) for s in sections]},
            request_text=request_text or services.composer.render_sections(sections),
        )
        session.add(row)
        await session.commit()
        return await _view(session, row)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# Stored requests
# ---------------------------------------------------------------------------

async def get_request(services: Services, request_id: str) -> RequestView:
    session = await services.session_factory()
    try:
        return await _view(session, await _load_request(session, request_id))
    finally:
        await session.close()


async def update_request(
    services: Services,
    request_id: str,
    sections: list[RequestSection] | None = None,
    request_text: str | None = None,
    status: str | None = None,
) -> RequestView:
    """Edit a draft; ``status`` may only move it to READY."""
    session = await services.session_factory()
    try:
        row = await _load_request(session, request_id)
        assert_draft(row.status, "edit")
        if sections is not None:
            row.customizations = {"sections": [section_to_dict(s) for s in sections]}
            row.categories = [s.category_id for s in sections if isinstance(s, CategorySection)]
            if request_text is None:
                row.request_text = services.composer.render_sections(sections)
        if request_text is not None:
            row.request_text = request_text
        if status is not None and status.upper() != row.status:
            row.status = check_transition(row.status, status).value
        await session.commit()
        return await _view(session, row)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def delete_request(services: Services, request_id: str) -> None:
    session = await services.session_factory()
    try:
        row = await _load_request(session, request_id)
        assert_draft(row.status, "delete")
        await session.delete(row)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
    logger.info("Deleted draft request %s", request_id, extra={"request_id": request_id})


async def finalize_request(
    services: Services,
    request_id: str,
    request_text: str | None = None,
    on: date | None = None,
) -> RequestView:
    """Render the draft to PDF, store it, and mark the request READY."""
    session = await services.session_factory()
    try:
        row = await _load_request(session, request_id)
        assert_draft(row.status, "finalize")
        ordinance, municipality, custodian = await _load_ordinance(session, row.ordinance_id)
        text = request_text or row.request_text
        data = _request_data(
            ordinance, municipality, custodian, row.categories or [], {}, request_number=row.request_number,
        )

        pdf = render_request_pdf(text, data, on=on)
        url = await services.blob_store.store(pdf, f"opra-requests/{slugify(municipality.name)}-{row.id}.pdf")

        row.request_text = text
        row.pdf_url = url
        row.status = check_transition(row.status, RequestStatus.READY.value).value
        try:
            await session.commit()
        except Exception:
            await services.blob_store.delete(url)
            raise
        view = await _view(session, row)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()

    logger.info("Finalized request %s → %s", row.request_number, url, extra={"request_id": request_id})
    return view


async def update_status(services: Services, request_id: str, status: str) -> RequestView:
    """Move a request along its lifecycle (submission, acknowledgement, outcome, appeal)."""
    session = await services.session_factory()
    try:
        row = await _load_request(session, request_id)
        target = check_transition(row.status, status)
        row.status = target.value
        if target is RequestStatus.SUBMITTED:
            row.submitted_at = datetime.now(timezone.utc)
        await session.commit()
        return await _view(session, row)
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
