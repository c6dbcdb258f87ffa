"""Municipality workflows: discover-and-store, listing, reset."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func, select

from opradraft.core.errors import NotFoundError, PreconditionFailedError
from opradraft.core.types import CustodianInfo, DiscoveryResult
from opradraft.ingestion.custodian import find_custodian
from opradraft.ingestion.discovery import extract_code
from opradraft.observability.prompts import log_prompt_to_run
from opradraft.observability.tracing import set_tag, start_run
from opradraft.pipeline.services import Services
from opradraft.storage.models import Custodian, Municipality, OpraRequest, Ordinance, OrdinanceChunk

logger = logging.getLogger(__name__)

HAS_ORDINANCE = "has_ordinance"
NO_ORDINANCE = "no_ordinance"
NOT_SCRAPED = "not_scraped"


@dataclass
class DiscoveryOutcome:
    municipality_id: str
    result: DiscoveryResult
    ordinance_id: str | None = None
    custodian: CustodianInfo | None = None


@dataclass
class MunicipalitySummary:
    id: str
    name: str
    county: str | None
    state: str
    status: str
    ordinance_count: int
    last_discovery_at: datetime | None = None


def derive_status(discovery_status: str | None, ordinance_count: int) -> str:
    if ordinance_count:
        return HAS_ORDINANCE
    if discovery_status == NO_ORDINANCE:
        return NO_ORDINANCE
    return NOT_SCRAPED


async def _get_or_create(session, name: str, county: str | None, state: str) -> Municipality:
    stmt = select(Municipality).where(
        func.lower(Municipality.name) == name.lower(),
        Municipality.state == state,
    )
    stmt = stmt.where(Municipality.county.is_(None)) if county is None else stmt.where(
        func.lower(Municipality.county) == county.lower()
    )
    municipality = (await session.execute(stmt)).scalars().first()
    if municipality is None:
        municipality = Municipality(name=name, county=county, state=state, discovery_status=NOT_SCRAPED)
        session.add(municipality)
        await session.flush()
    return municipality


async def discover_municipality(services: Services, name: str, county: str | None = None) -> DiscoveryOutcome:
    """Run ordinance discovery and persist what was found.

    A failed discovery is recorded on the municipality (``no_ordinance``)
    and returned, not raised.
    """
    name = name.strip()
    county = county.strip() if county else None
    if county and county.lower().endswith(" county"):
        county = county[: -len(" county")].strip()

    with start_run(f"discover_{name[:30]}", municipality=name, county=county or ""):
        log_prompt_to_run("answer_question")
        log_prompt_to_run("ordinance_check")
        result = await services.discovery.discover(name, county)
        set_tag("status", "found" if result.success else "not_found")

    custodian = None
    if result.success and services.search is not None:
        custodian = await find_custodian(
            services.search, name,
            state=services.settings.target_state, state_abbr=services.settings.target_state_abbr,
        )

    session = await services.session_factory()
    try:
        municipality = await _get_or_create(session, name, county, services.settings.target_state_abbr)
        municipality.last_discovery_at = datetime.now(timezone.utc)
        outcome = DiscoveryOutcome(municipality_id=municipality.id, result=result, custodian=custodian)

        if result.success:
            ordinance = Ordinance(
                municipality_id=municipality.id,
                title=result.title or f"{name} Rent Control Ordinance",
                code=extract_code(result.content or ""),
                full_text=result.content,
                source_url=result.url,
                discovery_strategy=result.strategy,
                confidence=result.confidence,
            )
            session.add(ordinance)
            municipality.discovery_status = HAS_ORDINANCE
            if custodian is not None:
                await session.execute(delete(Custodian).where(Custodian.municipality_id == municipality.id))
                session.add(Custodian(
                    municipality_id=municipality.id,
                    name=custodian.name,
                    title=custodian.title,
                    email=custodian.email,
                    phone=custodian.phone,
                    address=custodian.address,
                ))
            await session.flush()
            outcome.ordinance_id = ordinance.id
        else:
            municipality.discovery_status = NO_ORDINANCE

        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()

    logger.info(
        "Discovery for %s: %s", name, "found" if result.success else "no ordinance",
        extra={"municipality": name, "strategy": result.strategy},
    )
    return outcome


async def list_municipalities(
    services: Services,
    name: str | None = None,
    county: str | None = None,
) -> list[MunicipalitySummary]:
    """Municipalities with their derived discovery status, filterable by name and county."""
    counts = (
        select(Ordinance.municipality_id, func.count(Ordinance.id).label("n"))
        .group_by(Ordinance.municipality_id)
        .subquery()
    )
    stmt = (
        select(Municipality, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.municipality_id == Municipality.id)
        .order_by(Municipality.name)
    )
    if name:
        stmt = stmt.where(Municipality.name.ilike(f"%{name}%"))
    if county:
        stmt = stmt.where(func.lower(Municipality.county) == county.lower())

    session = await services.session_factory()
    try:
        rows = (await session.execute(stmt)).all()
    finally:
        await session.close()

    return [
        MunicipalitySummary(
            id=m.id,
            name=m.name,
            county=m.county,
            state=m.state,
            status=derive_status(m.discovery_status, int(n)),
            ordinance_count=int(n),
            last_discovery_at=m.last_discovery_at,
        )
        for m, n in rows
    ]


async def reset_municipality(services: Services, municipality_id: str) -> dict[str, int]:
    """Delete a municipality's chunks, ordinances and custodians in one transaction.

    Raises:
        NotFoundError: no such municipality.
        PreconditionFailedError: OPRA requests reference it.
    """
    session = await services.session_factory()
    try:
        municipality = await session.get(Municipality, municipality_id)
        if municipality is None:
            raise NotFoundError(f"Municipality {municipality_id} not found")

        requests = await session.execute(
            select(func.count()).select_from(OpraRequest).where(OpraRequest.municipality_id == municipality_id)
        )
        if requests.scalar_one():
            raise PreconditionFailedError(
                f"Municipality {municipality.name} has OPRA requests; delete them before resetting"
            )

        ordinance_ids = select(Ordinance.id).where(Ordinance.municipality_id == municipality_id)
        chunks = await session.execute(delete(OrdinanceChunk).where(OrdinanceChunk.ordinance_id.in_(ordinance_ids)))
        ordinances = await session.execute(delete(Ordinance).where(Ordinance.municipality_id == municipality_id))
        custodians = await session.execute(delete(Custodian).where(Custodian.municipality_id == municipality_id))
        municipality.discovery_status = NOT_SCRAPED
        municipality.last_discovery_at = None
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()

    deleted = {
        "chunks": chunks.rowcount or 0,
        "ordinances": ordinances.rowcount or 0,
        "custodians": custodians.rowcount or 0,
    }
    logger.info("Reset municipality %s: %s", municipality_id, deleted)
    return deleted
