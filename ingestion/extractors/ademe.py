"""
ADEME energy diagnostics (DPE) data-fair API.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from core.config import settings
from core.exceptions import DataFormatError, ExtractionError
from ingestion.http_client import RateLimitedClient
from schemas.raw import DpeRaw
import logging

logger = logging.getLogger(__name__)

SELECT_FIELDS = ",".join([
    "numero_dpe",
    "adresse_ban",
    "code_postal_ban",
    "nom_commune_ban",
    "code_departement_ban",
    "etiquette_dpe",
    "etiquette_ges",
    "_geopoint",
    "date_etablissement_dpe",
    "date_reception_dpe",
    "type_batiment",
    "annee_construction",
    "surface_habitable_logement",
])


def build_query(
    department: str,
    since_date: date,
    energy_classes: Sequence[str],
    before_date: Optional[date] = None,
) -> str:
    """data-fair ``qs`` expression for one department and date window."""
    department = department.zfill(2)
    date_filter = f"date_etablissement_dpe:>={since_date.isoformat()}"
    if before_date:
        date_filter += f" AND date_etablissement_dpe:<={before_date.isoformat()}"
    return (
        f'code_departement_ban:"{department}" '
        f"AND etiquette_dpe:({' OR '.join(energy_classes)}) "
        f"AND {date_filter}"
    )


class AdemeDpeFetcher:
    """
    Page through every DPE matching a department, energy classes and date window.

    The API refuses pages beyond its pagination window with HTTP 400. That
    answer is never retried; after some records were fetched the harvest
    keeps what it has.
    """

    def __init__(
        self,
        client: Optional[RateLimitedClient] = None,
        base_url: str = settings.ADEME_API_URL,
        page_size: int = settings.ADEME_PAGE_SIZE,
    ):
        self.client = client or RateLimitedClient(
            "ademe",
            min_interval=settings.ADEME_MIN_INTERVAL_MS / 1000,
            retry_delay=2.0,
            non_retry_statuses=(400,),
        )
        self.base_url = base_url
        self.page_size = page_size

    async def close(self):
        await self.client.close()

    async def fetch_page(self, params: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        """Rows of one page, or None when the API rejects the page with HTTP 400."""
        response = await self.client.get(self.base_url, params=params)
        if response.status_code == 400:
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise DataFormatError(
                "ADEME API returned invalid JSON",
                context={"page": params.get("page"), "response_body": response.text[:500]},
                original_exception=e
            )
        return data.get("results") or []

    async def fetch_all(
        self,
        department: str,
        since_date: date,
        energy_classes: Sequence[str] = ("F", "G"),
        before_date: Optional[date] = None,
    ) -> List[DpeRaw]:
        query = build_query(department, since_date, energy_classes, before_date)
        rows: List[Dict[str, Any]] = []
        page = 1

        logger.info(f"Fetching DPE records for department {department}: {query}")

        while True:
            params = {
                "size": self.page_size,
                "page": page,
                "select": SELECT_FIELDS,
                "qs": query,
            }
            results = await self.fetch_page(params)
            if results is None:
                if rows:
                    logger.warning(
                        f"Reached API pagination limit at page {page}. "
                        f"Continuing with {len(rows)} records already fetched."
                    )
                    break
                raise ExtractionError(
                    "ADEME API rejected the query",
                    context={"department": department, "page": page, "status_code": 400, "query": query}
                )

            rows.extend(results)
            logger.info(f"Fetched page {page}: {len(results)} records (total: {len(rows)})")

            if len(results) < self.page_size:
                break
            page += 1

        records = []
        for row in rows:
            try:
                records.append(DpeRaw.parse_obj(row))
            except ValueError as e:
                logger.warning(f"Skipping unreadable DPE row {row.get('numero_dpe')}: {e}")

        logger.info(f"Completed fetching {len(records)} DPE records for department {department}")
        return records
