"""
Failing companies: BODACC collective-proceedings notices (CSV export)
resolved to establishments through the public company registry.
"""

import io
import json
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import pandas as pd
from core.config import settings
from core.exceptions import DataFormatError
from ingestion.http_client import RateLimitedClient
from schemas.raw import EstablishmentRaw
import logging

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ",".join([
    "numerodepartement",
    "departement_nom_officiel",
    "familleavis_lib",
    "typeavis_lib",
    "dateparution",
    "commercant",
    "ville",
    "cp",
    "listepersonnes",
    "jugement",
])

SIREN_PATTERN = re.compile(r"^\d{9}$")


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Parse the ``;``-separated export; every value stays a string."""
    if not text.strip():
        return []
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            sep=";",
            dtype=str,
            keep_default_na=False,
            on_bad_lines="warn",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataFormatError("Failed to parse BODACC CSV export", original_exception=e)
    frame.columns = [column.strip() for column in frame.columns]
    return frame.to_dict(orient="records")


def extract_siren(listepersonnes: str) -> Optional[str]:
    """
    First valid 9-digit SIREN in the ``listepersonnes`` JSON column.

    Falls back to a bare 9-digit number when the JSON is unreadable.
    """
    if not listepersonnes:
        return None
    try:
        data = json.loads(listepersonnes)
    except ValueError:
        match = re.search(r"\b\d{9}\b", listepersonnes)
        return match.group(0) if match else None

    entries = data if isinstance(data, list) else [data]
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        person = entry.get("personne") or entry
        number = ((person.get("numeroImmatriculation") or {}).get("numeroIdentification") or "")
        siren = re.sub(r"\s", "", str(number))
        if SIREN_PATTERN.match(siren):
            return siren
        if siren:
            logger.warning(f"Invalid SIREN format: {siren} (expected 9 digits)")
    return None


def unique_sirens(rows: List[Dict[str, str]]) -> List[Tuple[str, Dict[str, str]]]:
    """SIRENs in first-seen order, each with the notice it came from."""
    sirens: Dict[str, Dict[str, str]] = {}
    for row in rows:
        siren = extract_siren(row.get("listepersonnes", ""))
        if siren and siren not in sirens:
            sirens[siren] = row
    return list(sirens.items())


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _parse_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class CompanyRegistry:
    """recherche-entreprises.api.gouv.fr lookups by SIREN"""

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        base_url: str = settings.COMPANY_SEARCH_URL,
    ):
        self.client = client or RateLimitedClient(
            "company-registry",
            min_interval=settings.COMPANY_SEARCH_MIN_INTERVAL_MS / 1000,
            non_retry_statuses=(404,),
        )
        self.base_url = base_url

    async def close(self):
        await self.client.close()

    async def get_establishments(self, siren: str) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Company name plus its head office and matching establishments."""
        if not SIREN_PATTERN.match(siren):
            logger.warning(f"Invalid SIREN format: {siren}")
            return None, []

        response = await self.client.get(self.base_url, params={"q": siren})
        if response.status_code == 404:
            return None, []

        results = response.json().get("results") or []
        if not results:
            logger.warning(f"No results found for SIREN: {siren}")
            return None, []

        company = results[0]
        establishments = []
        if company.get("siege"):
            establishments.append(company["siege"])
        establishments.extend(company.get("matching_etablissements") or [])

        # The head office is usually repeated in matching_etablissements
        unique: Dict[str, Dict[str, Any]] = {}
        for establishment in establishments:
            key = establishment.get("siret") or str(len(unique))
            unique.setdefault(key, establishment)

        return company.get("nom_complet") or company.get("nom_raison_sociale"), list(unique.values())


class BodaccFetcher:
    """Download the notices for a department and expand them to establishments."""

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        registry: Optional[CompanyRegistry] = None,
        export_url: str = settings.BODACC_EXPORT_URL,
    ):
        self.client = client or RateLimitedClient("bodacc", timeout=settings.CSV_TIMEOUT_SECONDS)
        self.registry = registry or CompanyRegistry()
        self.export_url = export_url
        self.failed_sirens = 0

    async def close(self):
        await self.client.close()
        await self.registry.close()

    def build_params(self, department: str, since_date: date, before_date: Optional[date] = None) -> Dict[str, Any]:
        where = (
            f'familleavis="collective" AND numerodepartement="{department}" '
            f'AND dateparution>="{since_date.isoformat()}"'
        )
        if before_date:
            where += f' AND dateparution<="{before_date.isoformat()}"'
        return {
            "where": where,
            "select": EXPORT_FIELDS,
            "limit": -1,
            "delimiter": ";",
        }

    async def fetch_notices(
        self, department: str, since_date: date, before_date: Optional[date] = None
    ) -> List[Dict[str, str]]:
        response = await self.client.get(
            self.export_url, params=self.build_params(department, since_date, before_date)
        )
        rows = parse_csv(response.text)
        logger.info(f"Fetched {len(rows)} BODACC notices for department {department}")
        return rows

    async def fetch_all(
        self, department: str, since_date: date, before_date: Optional[date] = None
    ) -> List[EstablishmentRaw]:
        rows = await self.fetch_notices(department, since_date, before_date)
        sirens = unique_sirens(rows)
        logger.info(f"Found {len(sirens)} unique SIREN(s) to process")

        records: List[EstablishmentRaw] = []
        self.failed_sirens = 0

        for index, (siren, row) in enumerate(sirens, start=1):
            try:
                company_name, establishments = await self.registry.get_establishments(siren)
            except Exception as e:
                self.failed_sirens += 1
                logger.error(f"Error processing SIREN {siren} ({index}/{len(sirens)}): {e}")
                continue

            if not establishments:
                logger.warning(f"No establishments found for SIREN {siren}")
                continue

            judgement = None
            if row.get("jugement"):
                try:
                    judgement = json.loads(row["jugement"])
                except ValueError:
                    judgement = row["jugement"]
                if not isinstance(judgement, dict):
                    judgement = {"raw": judgement}

            for establishment in establishments:
                records.append(EstablishmentRaw(
                    siren=siren,
                    siret=establishment.get("siret"),
                    company_name=company_name or row.get("commercant"),
                    address=establishment.get("adresse"),
                    zip_code=establishment.get("code_postal"),
                    city=establishment.get("libelle_commune"),
                    latitude=_parse_float(establishment.get("latitude")),
                    longitude=_parse_float(establishment.get("longitude")),
                    publication_date=_parse_date(row.get("dateparution")),
                    judgement=judgement,
                ))

        logger.info(
            f"Resolved {len(records)} establishment(s) from {len(sirens)} SIREN(s), "
            f"{self.failed_sirens} lookup failure(s)"
        )
        return records
