"""
Transform tagged raw records into canonical candidate records with Pydantic validation
"""

import re
from typing import Any, Optional
from datetime import date, datetime
from pydantic import ValidationError as PydanticValidationError
from schemas.normalized import CandidateRecord
from schemas.raw import AuctionRaw, DpeRaw, EstablishmentRaw, ListingRaw, RawRecord
from models.base import OpportunityType
from core.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)

ZIP_CODE = re.compile(r"\b(\d{5})\b")


def department_from_zip(zip_code: Optional[str]) -> Optional[str]:
    """75011 -> 75, 97411 -> 974"""
    if not zip_code or not zip_code[:2].isdigit():
        return None
    return zip_code[:3] if zip_code.startswith("97") else zip_code[:2]


class RecordNormalizer:
    """
    Map every raw record kind into a CandidateRecord.

    Handles:
    - External id conventions per source
    - Mandatory field checks
    - Type conversion
    - Type-specific payload
    """

    def normalize(self, raw: RawRecord) -> CandidateRecord:
        """
        Returns:
            Validated CandidateRecord (coordinates may still be missing)

        Raises:
            ValidationError: when a mandatory field is missing or malformed
        """
        try:
            if isinstance(raw, AuctionRaw):
                return self._normalize_auction(raw)
            if isinstance(raw, ListingRaw):
                return self._normalize_listing(raw)
            if isinstance(raw, DpeRaw):
                return self._normalize_dpe(raw)
            if isinstance(raw, EstablishmentRaw):
                return self._normalize_establishment(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                "Candidate record failed validation",
                context={"kind": raw.kind, "field_errors": e.errors()},
                original_exception=e
            )
        raise ValidationError(f"Unknown raw record type: {type(raw).__name__}")

    @staticmethod
    def _require(value: Any, field_name: str, raw: RawRecord) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(
                f"Missing mandatory field {field_name}",
                context={"kind": raw.kind, "field_name": field_name}
            )
        return value

    def _normalize_auction(self, raw: AuctionRaw) -> CandidateRecord:
        zip_match = ZIP_CODE.search(raw.address or "")
        zip_code = zip_match.group(1) if zip_match else None
        department = raw.department or department_from_zip(zip_code)

        return CandidateRecord(
            external_id=f"encheres-publiques-{raw.lot_id}",
            opportunity_type=OpportunityType.AUCTION,
            label=self._require(raw.label, "label", raw),
            address=self._require(raw.address, "address", raw),
            zip_code=zip_code,
            department=self._require(department, "department", raw),
            latitude=raw.latitude,
            longitude=raw.longitude,
            opportunity_date=raw.auction_date.date() if raw.auction_date else None,
            payload={
                "url": raw.url,
                "city": raw.city,
                "description": raw.description,
                "currentPrice": raw.current_price,
                "lowerEstimate": raw.lower_estimate,
                "upperEstimate": raw.upper_estimate,
                "reservePrice": raw.reserve_price,
                "energyClass": raw.energy_class,
                "squareFootage": raw.square_footage,
                "rooms": raw.rooms,
                "auctionVenue": raw.auction_venue,
                "propertyType": raw.property_type,
                "images": raw.images,
            },
        )

    def _normalize_listing(self, raw: ListingRaw) -> CandidateRecord:
        return CandidateRecord(
            external_id=self._require(raw.external_id, "external_id", raw),
            opportunity_type=OpportunityType.REAL_ESTATE_LISTING,
            label=self._require(raw.label, "label", raw),
            address=raw.address or raw.city,
            zip_code=raw.zip_code,
            department=self._require(raw.department, "department", raw),
            latitude=None,
            longitude=None,
            opportunity_date=raw.opportunity_date or date.today(),
            payload={
                "url": raw.url,
                "city": raw.city,
                "description": raw.description,
                "transactionType": raw.transaction_type,
                "propertyType": raw.property_type,
                "price": raw.price,
                "priceType": raw.price_type,
                "squareFootage": raw.square_footage,
                "landArea": raw.land_area,
                "rooms": raw.rooms,
                "bedrooms": raw.bedrooms,
                "constructionYear": raw.construction_year,
                "parking": raw.parking,
                "energyClass": raw.energy_class,
                "images": raw.images,
                "notaryOffice": raw.notary_office.dict(exclude_none=True) if raw.notary_office else None,
            },
        )

    def _normalize_dpe(self, raw: DpeRaw) -> CandidateRecord:
        geopoint = self._require(raw.geopoint, "_geopoint", raw)
        try:
            latitude, longitude = (float(part) for part in geopoint.split(","))
        except ValueError as e:
            raise ValidationError(
                "Malformed _geopoint",
                context={"kind": raw.kind, "field_name": "_geopoint", "field_value": geopoint},
                original_exception=e
            )

        date_text = self._require(
            raw.date_etablissement_dpe or raw.date_reception_dpe, "date_etablissement_dpe", raw
        )
        opportunity_date = self._parse_date(date_text)
        if opportunity_date is None:
            raise ValidationError(
                "Malformed diagnostic date",
                context={"kind": raw.kind, "field_name": "date_etablissement_dpe", "field_value": date_text}
            )

        return CandidateRecord(
            external_id=self._require(raw.numero_dpe, "numero_dpe", raw),
            opportunity_type=OpportunityType.ENERGY_SIEVE,
            label=raw.adresse_ban or raw.nom_commune_ban or "Unknown",
            address=raw.adresse_ban,
            zip_code=raw.code_postal_ban,
            department=self._require(
                raw.code_departement_ban or department_from_zip(raw.code_postal_ban), "code_departement_ban", raw
            ),
            latitude=latitude,
            longitude=longitude,
            opportunity_date=opportunity_date,
            payload={
                "energyClass": raw.etiquette_dpe,
                "gesClass": raw.etiquette_ges,
                "buildingType": raw.type_batiment,
                "constructionYear": raw.annee_construction,
                "squareFootage": raw.surface_habitable_logement,
            },
        )

    def _normalize_establishment(self, raw: EstablishmentRaw) -> CandidateRecord:
        siret = self._require(raw.siret, "siret", raw)
        company_name = raw.company_name or raw.siren

        return CandidateRecord(
            external_id=siret,
            opportunity_type=OpportunityType.LIQUIDATION,
            label=f"{company_name} ({siret})",
            address=self._require(raw.address, "address", raw),
            zip_code=raw.zip_code,
            department=self._require(department_from_zip(raw.zip_code), "zip_code", raw),
            latitude=raw.latitude,
            longitude=raw.longitude,
            opportunity_date=raw.publication_date,
            payload={
                "siren": raw.siren,
                "siret": siret,
                "companyName": raw.company_name,
                "city": raw.city,
                "judgement": raw.judgement,
            },
        )

    @staticmethod
    def _parse_date(value: Any) -> Optional[date]:
        """Safely parse a date or datetime string"""
        if isinstance(value, date):
            return value
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
        except ValueError:
            return None
