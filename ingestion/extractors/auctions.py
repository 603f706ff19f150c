"""
encheres-publiques.com: lazy-loaded auction listing and Next.js detail pages.

Detail pages embed their Apollo cache in ``__NEXT_DATA__``; the lot and its
address are read from there instead of from the rendered markup.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from core.exceptions import DataFormatError
from ingestion.extractors.detail import DetailFetcher, clean_text
from schemas.raw import AuctionRaw
import logging

logger = logging.getLogger(__name__)

AUCTIONS_BASE_URL = "https://www.encheres-publiques.com"
LISTING_LINK_SELECTOR = '[class*="card"] a, a[class*="card"]'

NEXT_DATA_SCRIPT = """() => {
    const el = document.getElementById('__NEXT_DATA__');
    return el ? el.textContent : null;
}"""

TITLE_LOCATION_SUFFIX = re.compile(r"\s+situ[ée]e?\s+à\s+.*$", re.IGNORECASE)
NOM_LOCATION = re.compile(r"situ[ée]e?\s+(?:à|dans|sur)\s+(.+)$", re.IGNORECASE)
URL_LOCATION = re.compile(r"/([a-z-]+)-(\d{2,3})/")
ZIP_CODE = re.compile(r"\b(\d{5})\b")

AUCTION_DATE_FIELDS = ("fermeture_reelle_date", "encheres_fermeture_date", "fermeture_date")


def is_auction_link(href: str) -> bool:
    """Lot pages live under /encheres/, category pages under /ventes/."""
    return "/encheres/" in href and "/ventes/" not in href


def extract_title(nom: Optional[str]) -> str:
    """Drop the trailing "située à <ville>" from a lot name."""
    if not nom:
        return ""
    return TITLE_LOCATION_SUFFIX.sub("", nom).strip()


def extract_auction_date(lot: Dict[str, Any]) -> Optional[datetime]:
    """Closing date, by priority; values are unix seconds or ISO strings."""
    for field in AUCTION_DATE_FIELDS:
        value = lot.get(field)
        if value in (None, ""):
            continue
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (TypeError, ValueError):
            pass
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable {field}: {value}")
    return None


def _to_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(str(value).replace(" ", "").replace(",", "."))
    except ValueError:
        return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _city_from_slug(slug: str) -> str:
    return "-".join(part.capitalize() for part in slug.split("-") if part)


def _resolve_ref(field: Any, all_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not isinstance(field, dict):
        return None
    ref = field.get("__ref") or field.get("_ref")
    target = all_data.get(ref) if ref else None
    return target if isinstance(target, dict) else None


def extract_location(lot: Dict[str, Any], all_data: Dict[str, Any], url: str) -> Dict[str, Any]:
    """
    Locate a lot, trying in turn:
    1. the referenced Adresse object (text, city, coordinates)
    2. a "située à ..." phrase in the lot name
    3. the city slug in the URL
    The department always comes from the URL or, failing that, the zip code.
    """
    url_match = URL_LOCATION.search(url)
    url_city = _city_from_slug(url_match.group(1)) if url_match else None
    url_department = url_match.group(2) if url_match else None

    address_obj = _resolve_ref(lot.get("adresse_physique"), all_data) or _resolve_ref(
        lot.get("adresse"), all_data
    )

    location: Dict[str, Any] = {}
    if address_obj and address_obj.get("text"):
        location["address"] = address_obj["text"]
        location["city"] = address_obj.get("ville") or url_city
        coords = address_obj.get("coords")
        if isinstance(coords, (list, tuple)) and len(coords) == 2:
            location["longitude"] = _to_float(coords[0])
            location["latitude"] = _to_float(coords[1])
    else:
        nom_match = NOM_LOCATION.search(lot.get("nom") or "")
        if nom_match:
            place = nom_match.group(1).strip()
        elif url_city:
            place = url_city
        else:
            place = clean_text(lot.get("nom"))
        location["address"] = place
        location["city"] = place

    department = url_department
    if department is None:
        zip_match = ZIP_CODE.search(location.get("address") or "")
        if zip_match:
            zip_code = zip_match.group(1)
            department = zip_code[:3] if zip_code.startswith("97") else zip_code[:2]
    location["department"] = department
    return location


def parse_lot(next_data: Dict[str, Any], url: str) -> Optional[AuctionRaw]:
    """Turn a ``__NEXT_DATA__`` payload into an AuctionRaw, or None if no lot."""
    try:
        all_data = next_data["props"]["pageProps"]["apolloState"]["data"]
    except (KeyError, TypeError):
        logger.warning(f"Unexpected __NEXT_DATA__ structure for {url}")
        return None

    lot = next(
        (v for v in all_data.values() if isinstance(v, dict) and v.get("__typename") == "Lot"),
        None,
    )
    if lot is None:
        logger.warning(f"No lot data found for {url}")
        return None

    lot_id = (next_data.get("query") or {}).get("lot_id") or lot.get("id")
    if not lot_id:
        logger.warning(f"No lot id found for {url}")
        return None

    location = extract_location(lot, all_data, url)
    organiser = lot.get("organisateur") or {}
    query = next_data.get("query") or {}

    return AuctionRaw(
        url=url,
        lot_id=str(lot_id),
        label=extract_title(lot.get("nom")) or f"Bien immobilier à {location.get('city') or ''}".strip(),
        address=location["address"],
        city=location.get("city"),
        department=location.get("department"),
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        auction_date=extract_auction_date(lot),
        description=clean_text(lot.get("description")) or None,
        current_price=_to_float(lot.get("offre_actuelle")),
        lower_estimate=_to_float(lot.get("estimation_basse")),
        upper_estimate=_to_float(lot.get("estimation_haute")),
        reserve_price=_to_float(lot.get("prix_plancher")),
        energy_class=lot.get("critere_consommation_energetique") or None,
        square_footage=_to_float(lot.get("critere_surface_habitable")),
        rooms=_to_int(lot.get("critere_nombre_de_pieces")),
        auction_venue=organiser.get("nom") if isinstance(organiser, dict) else None,
        property_type=query.get("sous_categorie") or query.get("categorie"),
        images=[lot["photo"]] if lot.get("photo") else [],
    )


class AuctionDetailFetcher(DetailFetcher):
    """Reads each lot from the page's embedded Next.js data."""

    async def wait_until_ready(self):
        await self.session.wait_for_content(timeout_ms=5000)

    async def extract(self, url: str) -> Optional[AuctionRaw]:
        payload = await self.page.evaluate(NEXT_DATA_SCRIPT)
        if not payload:
            logger.warning(f"No __NEXT_DATA__ found for {url}")
            return None

        try:
            next_data = json.loads(payload)
        except ValueError as e:
            raise DataFormatError(
                "Failed to parse __NEXT_DATA__",
                context={"url": url},
                original_exception=e
            )

        return parse_lot(next_data, url)
