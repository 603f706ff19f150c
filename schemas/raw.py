"""
Raw record shapes, one per source kind.

Each model carries a ``kind`` literal so a mixed list can be dispatched
without guessing; loosely-typed source payloads stop here and never reach
the normalized layer.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal, Union
from datetime import date, datetime


class AuctionRaw(BaseModel):
    """One lot scraped from an encheres-publiques detail page"""

    kind: Literal["auction"] = "auction"
    url: str
    lot_id: str
    label: str
    address: str
    city: Optional[str] = None
    department: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    auction_date: Optional[datetime] = None
    description: Optional[str] = None
    current_price: Optional[float] = None
    lower_estimate: Optional[float] = None
    upper_estimate: Optional[float] = None
    reserve_price: Optional[float] = None
    energy_class: Optional[str] = None
    square_footage: Optional[float] = None
    rooms: Optional[int] = None
    auction_venue: Optional[str] = None
    property_type: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class NotaryOffice(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    contact: Optional[str] = None


class ListingRaw(BaseModel):
    """One notary listing scraped from its detail page"""

    kind: Literal["listing"] = "listing"
    url: str
    external_id: str
    label: str
    city: str
    department: str
    address: Optional[str] = None
    zip_code: Optional[str] = None
    opportunity_date: Optional[date] = None
    description: Optional[str] = None
    transaction_type: str = "VENTE"
    property_type: str = "UNKNOWN"
    price: Optional[float] = None
    price_type: Optional[str] = None
    square_footage: Optional[float] = None
    land_area: Optional[float] = None
    rooms: Optional[int] = None
    bedrooms: Optional[int] = None
    construction_year: Optional[int] = None
    parking: Optional[bool] = None
    energy_class: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    notary_office: Optional[NotaryOffice] = None


class DpeRaw(BaseModel):
    """One line of the ADEME energy diagnostics dataset"""

    kind: Literal["dpe"] = "dpe"
    numero_dpe: Optional[str] = None
    adresse_ban: Optional[str] = None
    code_postal_ban: Optional[str] = None
    nom_commune_ban: Optional[str] = None
    code_departement_ban: Optional[str] = None
    etiquette_dpe: Optional[str] = None
    etiquette_ges: Optional[str] = None
    geopoint: Optional[str] = Field(None, alias="_geopoint")
    date_etablissement_dpe: Optional[str] = None
    date_reception_dpe: Optional[str] = None
    type_batiment: Optional[str] = None
    annee_construction: Optional[Any] = None
    surface_habitable_logement: Optional[float] = None

    class Config:
        populate_by_name = True
        extra = "ignore"


class EstablishmentRaw(BaseModel):
    """An establishment of a company under collective proceedings"""

    kind: Literal["establishment"] = "establishment"
    siren: str
    siret: Optional[str] = None
    company_name: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    publication_date: Optional[date] = None
    judgement: Optional[Dict[str, Any]] = None


RawRecord = Union[AuctionRaw, ListingRaw, DpeRaw, EstablishmentRaw]
