from pydantic import BaseModel, Field
from typing import Optional


class GeocodeResult(BaseModel):
    latitude: float
    longitude: float
    label: Optional[str] = None
    postcode: Optional[str] = None
    score: float


class AddressRefinement(BaseModel):
    refined_address: str = Field(..., alias="refinedAddress")
    confidence: float = Field(..., ge=0, le=1)
    extracted_from_description: bool = Field(False, alias="extractedFromDescription")
    reasoning: Optional[str] = None

    class Config:
        populate_by_name = True
