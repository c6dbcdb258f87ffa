"""SQLAlchemy ORM models for municipalities, ordinances, pgvector chunks, and requests."""

import uuid

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase

from opradraft.config import settings


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


class Municipality(Base):
    """Aggregate root for ordinances and custodians."""

    __tablename__ = "municipalities"
    __table_args__ = (UniqueConstraint("name", "county", "state", name="uq_municipality_identity"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False, index=True)
    county = Column(String(100), index=True)
    state = Column(String(50), nullable=False, default="NJ")
    website = Column(String(500))
    # not_scraped | has_ordinance | no_ordinance
    discovery_status = Column(String(20), nullable=False, default="not_scraped")
    last_discovery_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Ordinance(Base):
    """Full ordinance text as discovered. Unprocessed until it has chunks."""

    __tablename__ = "ordinances"

    id = Column(String(36), primary_key=True, default=_uuid)
    municipality_id = Column(String(36), ForeignKey("municipalities.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    code = Column(String(100))
    full_text = Column(Text, nullable=False)
    source_url = Column(String(1000))
    effective_date = Column(Date)
    discovery_strategy = Column(String(50))
    confidence = Column(String(10))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class OrdinanceChunk(Base):
    """A chunk of ordinance text with its embedding vector."""

    __tablename__ = "ordinance_chunks"
    __table_args__ = (UniqueConstraint("ordinance_id", "chunk_index", name="uq_chunk_order"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    ordinance_id = Column(String(36), ForeignKey("ordinances.id"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    section_number = Column(String(50))
    section_title = Column(String(500))
    content = Column(Text, nullable=False)
    embedding = Column(Vector(settings.embedding_dim))
    start_char = Column(Integer, nullable=False, default=0)
    end_char = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Custodian(Base):
    """Best-effort records custodian contact, used only for the request header."""

    __tablename__ = "custodians"

    id = Column(String(36), primary_key=True, default=_uuid)
    municipality_id = Column(String(36), ForeignKey("municipalities.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    title = Column(String(200))
    email = Column(String(200))
    phone = Column(String(50))
    address = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class OpraRequest(Base):
    """A generated records request and its lifecycle state."""

    __tablename__ = "opra_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    request_number = Column(String(40), nullable=False, unique=True)
    municipality_id = Column(String(36), ForeignKey("municipalities.id"), nullable=False, index=True)
    ordinance_id = Column(String(36), ForeignKey("ordinances.id"), nullable=False, index=True)
    custodian_id = Column(String(36), ForeignKey("custodians.id"))
    status = Column(String(20), nullable=False, default="DRAFT")
    categories = Column(JSON, nullable=False, default=list)
    # Edited RequestSection list, serialized as tagged dicts
    customizations = Column(JSON)
    request_text = Column(Text, nullable=False)
    pdf_url = Column(String(1000))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    submitted_at = Column(DateTime(timezone=True))
