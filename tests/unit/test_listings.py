"""
Unit tests for notary listing parsing
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock
from ingestion.extractors.listings import (
    NotaryListingFetcher,
    external_id_from_url,
    is_listing_link,
    parse_bool,
    parse_first_int,
    parse_listing_date,
    parse_price,
    parse_surface,
    parse_title,
    parse_year,
)

LISTING_URL = "https://www.immobilier.notaires.fr/fr/annonce-immo/vente/maison/guingamp-22/1821467"


class TestListingHelpers:
    """Test text parsers"""

    def test_is_listing_link(self):
        assert is_listing_link(LISTING_URL)
        assert not is_listing_link("https://www.immobilier.notaires.fr/fr/annonces-immobilieres-liste?page=2")

    def test_external_id_from_url(self):
        assert external_id_from_url(LISTING_URL) == "notary-1821467"
        assert external_id_from_url("https://www.immobilier.notaires.fr/fr/contact") is None

    def test_parse_title(self):
        info = parse_title("Vente Maison 10 pièces - Guingamp - Côtes-d'Armor (22)")

        assert info["transaction_type"] == "VENTE"
        assert info["property_type"] == "MAI"
        assert info["city"] == "Guingamp"
        assert info["department"] == "22"

    def test_parse_title_without_location(self):
        info = parse_title("Vente Appartement")

        assert info["property_type"] == "APP"
        assert "city" not in info

    def test_parse_price(self):
        assert parse_price("245 000 €") == 245000.0
        assert parse_price("Prix sur demande") is None

    def test_parse_surface(self):
        assert parse_surface("243 m²") == 243.0
        assert parse_surface("85,5 m²") == 85.5
        assert parse_surface("") is None

    def test_parse_numbers(self):
        assert parse_first_int("5 pièces") == 5
        assert parse_year("Construit en 1975") == 1975
        assert parse_year("inconnue") is None

    def test_parse_bool(self):
        assert parse_bool("Oui") is True
        assert parse_bool("non") is False
        assert parse_bool("peut-être") is None

    def test_parse_listing_date(self):
        assert parse_listing_date("12/03/2024") == date(2024, 3, 12)
        assert parse_listing_date("2024-03-12") == date(2024, 3, 12)
        assert parse_listing_date("Mise à jour le 12/03/2024") == date(2024, 3, 12)
        assert parse_listing_date("hier") is None


class TestNotaryListingFetcher:
    """Test record assembly from a fake page"""

    def make_fetcher(self, texts):
        async def query_selector(selector):
            if selector not in texts:
                return None
            element = Mock()
            element.text_content = AsyncMock(return_value=texts[selector])
            element.get_attribute = AsyncMock(return_value=None)
            return element

        session = Mock()
        session.page.query_selector = AsyncMock(side_effect=query_selector)
        session.page.query_selector_all = AsyncMock(return_value=[])
        return NotaryListingFetcher(session, item_delay=0, item_jitter=0)

    @pytest.mark.asyncio
    async def test_extract_builds_listing(self):
        fetcher = self.make_fetcher({
            "[data-titre-annonce]": "Vente Maison 10 pièces - Guingamp - Côtes-d'Armor (22)",
            "[data-prix-prioritaire]": "245 000 €",
            "#data-description-surfaceHabitable": "243 m²",
            "[data-description-maj]": "12/03/2024",
            "[data-nom-office] a": "Office notarial de Guingamp",
        })

        record = await fetcher.extract(LISTING_URL)

        assert record.external_id == "notary-1821467"
        assert record.city == "Guingamp"
        assert record.department == "22"
        assert record.price == 245000.0
        assert record.price_type == "FAI"
        assert record.square_footage == 243.0
        assert record.opportunity_date == date(2024, 3, 12)
        assert record.notary_office.name == "Office notarial de Guingamp"
        assert record.rooms is None

    @pytest.mark.asyncio
    async def test_missing_title_discards(self):
        fetcher = self.make_fetcher({"[data-prix-prioritaire]": "245 000 €"})

        assert await fetcher.extract(LISTING_URL) is None
