"""
Pydantic schema for canonical candidate records with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from datetime import date
from models.base import OpportunityType


class CandidateRecord(BaseModel):
    """
    Canonical shape every source is mapped into before persistence.

    Coordinates may be missing right after transformation; enrichment
    fills them in and ``is_complete`` decides whether the record may be
    written.
    """

    external_id: str = Field(..., min_length=1, max_length=255)
    opportunity_type: OpportunityType

    label: str = Field(..., min_length=1, max_length=500)
    address: Optional[str] = None
    zip_code: Optional[str] = Field(None, max_length=10)
    department: str = Field(..., min_length=1, max_length=3)

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    opportunity_date: Optional[date] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    # Enrichment bookkeeping, not persisted as columns
    refined_address: Optional[str] = None
    address_confidence: Optional[float] = None

    @validator("external_id", "label")
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty after stripping")
        return v

    @validator("address", "zip_code", pre=True)
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @validator("department", pre=True)
    def pad_department(cls, v):
        """Department codes are at least two characters ("1" -> "01", "2A" kept)"""
        if v is None:
            return v
        v = str(v).strip().upper()
        if v.isdigit() and len(v) < 2:
            v = v.zfill(2)
        return v

    @validator("payload", pre=True)
    def clean_payload(cls, v):
        """Ensure payload is a dict without empty values"""
        if not isinstance(v, dict):
            return {}
        return {k: val for k, val in v.items() if val is not None and val != [] and val != {}}

    def is_complete(self) -> bool:
        """Only complete records are ever written."""
        return bool(
            self.external_id
            and self.address
            and self.latitude is not None
            and self.longitude is not None
        )

    def to_row(self) -> Dict[str, Any]:
        """Column values for the opportunities table"""
        return {
            "external_id": self.external_id,
            "type": self.opportunity_type,
            "label": self.label,
            "address": self.address,
            "zip_code": self.zip_code,
            "department": self.department,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "opportunity_date": self.opportunity_date,
            "payload": self.payload or None,
        }

    class Config:
        validate_assignment = True
