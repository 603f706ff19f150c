from sqlalchemy import Column, String, BigInteger, Enum, Text, Float, Date, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from models.base import Base, OpportunityType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Opportunity(Base):
    """
    Shared table for every sourced opportunity.

    Rows are insert-only: a second insert with the same ``external_id`` is a
    no-op, which is what makes re-running a harvest safe.

    External id conventions:
    - auctions: ``encheres-publiques-{id}``
    - listings: ``notary-{id}``
    - energy diagnostics: the ADEME ``numero_dpe``
    - failing companies: the establishment SIRET

    Type-specific data (price, notary office, energy class, company name...)
    lives in ``payload``.
    """
    __tablename__ = "opportunities"

    id = Column(BigInteger, primary_key=True, autoincrement=True)

    type = Column(Enum(OpportunityType), nullable=False, index=True)
    external_id = Column(String(255), nullable=False, unique=True)

    label = Column(String(500), nullable=False)
    address = Column(Text, nullable=False)
    zip_code = Column(String(10), nullable=True)
    department = Column(String(3), nullable=False, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    opportunity_date = Column(Date, nullable=True, index=True)
    payload = Column(JSONB, nullable=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_opportunity_type_department", "type", "department"),
    )
