"""
immobilier.notaires.fr: numbered listing pages and notary detail pages.

Each field has its own extractor. A missing or malformed element only
loses that field (logged at debug level); the record is discarded only
when label, city or department cannot be found.
"""

import re
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from ingestion.extractors.detail import DetailFetcher, clean_text
from schemas.raw import ListingRaw, NotaryOffice
import logging

logger = logging.getLogger(__name__)

LISTING_LINK_SELECTOR = 'a[href*="immobilier.notaires.fr/fr/annonce"]'
LISTING_URL_PATTERN = re.compile(r"immobilier\.notaires\.fr/fr/annonce.*/\d+$")
READY_SELECTOR = "#container_galerie_formulaire"

TITLE_LOCATION = re.compile(r"- ([^-]+) - ([^(]+)\((\d+)\)")
PROPERTY_TYPES = {"maison": "MAI", "appartement": "APP", "terrain": "TER"}

TRUE_VALUES = {"oui", "yes", "true", "1"}
FALSE_VALUES = {"non", "no", "false", "0"}


def is_listing_link(href: str) -> bool:
    return bool(LISTING_URL_PATTERN.search(href))


def external_id_from_url(url: str) -> Optional[str]:
    """/fr/annonce-immo/vente/maison/guingamp-22/1821467 -> notary-1821467"""
    match = re.search(r"/(\d+)$", url)
    return f"notary-{match.group(1)}" if match else None


def parse_title(title: str) -> Dict[str, str]:
    """
    Split "Vente Maison 10 pièces - Guingamp - Côtes-d'Armor (22)" into
    transaction type, property type, city and department.
    """
    result = {"transaction_type": "VENTE", "property_type": "UNKNOWN"}
    parts = title.split()
    if parts:
        result["transaction_type"] = parts[0].upper()
    if len(parts) > 1:
        word = parts[1].lower()
        result["property_type"] = next(
            (code for key, code in PROPERTY_TYPES.items() if key in word),
            word[:3].upper(),
        )

    match = TITLE_LOCATION.search(title)
    if match:
        result["city"] = clean_text(match.group(1))
        result["department"] = match.group(3)
    return result


def parse_price(text: str) -> Optional[float]:
    cleaned = re.sub(r"[€\s]", "", text).replace(",", ".")
    match = re.match(r"\d+(?:\.\d+)?", cleaned)
    return float(match.group(0)) if match else None


def parse_surface(text: str) -> Optional[float]:
    """ "243 m²" -> 243.0"""
    match = re.search(r"(\d+(?:[.,]\d+)?)", text)
    return float(match.group(1).replace(",", ".")) if match else None


def parse_first_int(text: str) -> Optional[int]:
    match = re.search(r"(\d+)", text)
    return int(match.group(1)) if match else None


def parse_year(text: str) -> Optional[int]:
    match = re.search(r"(\d{4})", text)
    return int(match.group(1)) if match else None


def parse_bool(text: str) -> Optional[bool]:
    value = text.lower().strip()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return None


def parse_listing_date(text: str) -> Optional[date]:
    for fmt in ("%d/%m/%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    match = re.search(r"(\d{2}/\d{2}/\d{4})", text)
    if match:
        return datetime.strptime(match.group(1), "%d/%m/%Y").date()
    return None


class NotaryListingFetcher(DetailFetcher):
    """Scrapes one notary listing per page."""

    async def wait_until_ready(self):
        await self.session.wait_for_content(timeout_ms=8000)
        try:
            await self.page.wait_for_selector(READY_SELECTOR, timeout=10000)
        except PlaywrightTimeoutError:
            # Usually hidden behind the cookie banner
            await self.session.handle_tarteaucitron_consent()
            await self.page.wait_for_selector(READY_SELECTOR, timeout=10000)

    async def _text(self, selector: str) -> Optional[str]:
        try:
            element = await self.page.query_selector(selector)
            if element is None:
                return None
            text = clean_text(await element.text_content())
            return text or None
        except Exception as e:
            logger.debug(f"Failed to read {selector}: {e}")
            return None

    async def extract_title_info(self) -> Dict[str, str]:
        title = await self._text("[data-titre-annonce]")
        if not title:
            return {}
        try:
            return parse_title(title)
        except Exception as e:
            logger.debug(f"Failed to parse title {title!r}: {e}")
            return {}

    async def extract_pricing(self) -> Tuple[Optional[float], Optional[str]]:
        text = await self._text("[data-prix-prioritaire]")
        return (parse_price(text) if text else None), "FAI"

    async def extract_number(self, selector: str, parser) -> Optional[float]:
        text = await self._text(selector)
        if not text:
            return None
        try:
            return parser(text)
        except Exception as e:
            logger.debug(f"Failed to parse {selector} value {text!r}: {e}")
            return None

    async def extract_images(self) -> List[str]:
        try:
            elements = await self.page.query_selector_all("ng-image-slider .custom-image-main img")
            images = []
            for element in elements:
                src = await element.get_attribute("src")
                if src and "data:image" not in src:
                    images.append(src)
            return images
        except Exception as e:
            logger.debug(f"Failed to extract images: {e}")
            return []

    async def extract_notary_office(self) -> Optional[NotaryOffice]:
        office = NotaryOffice(
            name=await self._text("[data-nom-office] a"),
            address=await self._text("[data-adresse-office]"),
            contact=await self._text("[data-contact-nom]"),
        )
        try:
            phone_element = await self.page.query_selector("[data-contact-tel]")
            if phone_element is not None:
                phone = await phone_element.get_attribute("data-phone") or await phone_element.text_content()
                office.phone = clean_text(phone) or None
        except Exception as e:
            logger.debug(f"Failed to extract notary phone: {e}")

        if not any(office.dict().values()):
            return None
        return office

    async def extract_energy_class(self) -> Optional[str]:
        try:
            container = await self.page.query_selector(".container_dpe_ges_nouveau")
            if container is None:
                return None
            classes = await container.get_attribute("class") or ""
            match = re.search(r"dpe_([a-g])", classes, re.IGNORECASE)
            if match:
                return match.group(1).upper()
            letter_element = await container.query_selector(".lettres[letter]")
            if letter_element is not None:
                letter = await letter_element.get_attribute("letter")
                return letter.upper() if letter else None
        except Exception as e:
            logger.debug(f"Failed to extract energy class: {e}")
        return None

    async def extract(self, url: str) -> Optional[ListingRaw]:
        external_id = external_id_from_url(url)
        label = await self._text("[data-titre-annonce]")
        title_info = await self.extract_title_info()
        city = title_info.get("city")
        department = title_info.get("department")

        if not (external_id and label and city and department):
            logger.warning(
                f"Missing required fields for {url}: "
                f"external_id={external_id}, label={label!r}, city={city!r}, department={department!r}"
            )
            return None

        date_text = await self._text("[data-description-maj]")
        price, price_type = await self.extract_pricing()
        parking_text = await self._text("[data-description-stationnement]")
        construction = await self.extract_number("[data-description-epoqueconstruction]", parse_year)

        return ListingRaw(
            url=url,
            external_id=external_id,
            label=label,
            city=city,
            department=department,
            address=city,
            opportunity_date=parse_listing_date(date_text) if date_text else None,
            description=await self._text("[data-description-contenu] p"),
            transaction_type=title_info.get("transaction_type", "VENTE"),
            property_type=title_info.get("property_type", "UNKNOWN"),
            price=price,
            price_type=price_type,
            square_footage=await self.extract_number("#data-description-surfaceHabitable", parse_surface),
            land_area=await self.extract_number("[data-description-surfaceterrain]", parse_surface),
            rooms=await self.extract_number("#data-description-nbPieces\\.texte", parse_first_int),
            bedrooms=await self.extract_number("#data-description-nbChambres", parse_first_int),
            construction_year=construction,
            parking=parse_bool(parking_text) if parking_text else None,
            energy_class=await self.extract_energy_class(),
            images=await self.extract_images(),
            notary_office=await self.extract_notary_office(),
        )
