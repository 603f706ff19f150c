"""
Unit tests for auction page parsing
"""

import json
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock
from core.exceptions import DataFormatError
from ingestion.extractors.auctions import (
    AuctionDetailFetcher,
    extract_auction_date,
    extract_location,
    extract_title,
    is_auction_link,
    parse_lot,
)

LOT_URL = "https://www.encheres-publiques.com/encheres/immobilier/appartements/lyon-69/appartement-3-pieces_98765"


class TestAuctionHelpers:
    """Test field helpers"""

    def test_is_auction_link(self):
        assert is_auction_link(LOT_URL)
        assert not is_auction_link("https://www.encheres-publiques.com/ventes/immobilier")
        assert not is_auction_link("https://www.encheres-publiques.com/encheres/immobilier/ventes/x")

    def test_extract_title_drops_location(self):
        assert extract_title("Maison 5 pièces située à Bordeaux") == "Maison 5 pièces"
        assert extract_title("Terrain constructible") == "Terrain constructible"
        assert extract_title(None) == ""

    def test_auction_date_priority(self):
        lot = {
            "fermeture_date": "2024-06-01T10:00:00Z",
            "fermeture_reelle_date": "2024-06-03T18:30:00Z",
        }

        assert extract_auction_date(lot) == datetime(2024, 6, 3, 18, 30, tzinfo=timezone.utc)

    def test_auction_date_from_unix_seconds(self):
        assert extract_auction_date({"encheres_fermeture_date": 1717000000}).date() == date(2024, 5, 29)

    def test_auction_date_missing(self):
        assert extract_auction_date({"fermeture_date": ""}) is None

    def test_location_from_name_when_no_address(self):
        lot = {"nom": "Appartement située à Villeurbanne"}

        location = extract_location(lot, {}, "https://www.encheres-publiques.com/encheres/immobilier/x/villeurbanne-69/lot_1")

        assert location["address"] == "Villeurbanne"
        assert location["city"] == "Villeurbanne"
        assert location["department"] == "69"

    def test_location_falls_back_to_url_city(self):
        location = extract_location({"nom": "Local commercial"}, {}, "https://x/encheres/immobilier/saint-denis-93/lot_1")

        assert location["city"] == "Saint-Denis"
        assert location["department"] == "93"


class TestParseLot:
    """Test __NEXT_DATA__ parsing"""

    def test_parse_full_lot(self, mock_next_data):
        record = parse_lot(mock_next_data, LOT_URL)

        assert record is not None
        assert record.lot_id == "98765"
        assert record.label == "Appartement 3 pièces"
        assert record.address == "8 Rue Mercière, 69002 Lyon"
        assert record.city == "Lyon"
        assert record.department == "69"
        assert record.latitude == pytest.approx(45.762)
        assert record.longitude == pytest.approx(4.832)
        assert record.current_price == 125000.0
        assert record.lower_estimate == 100000.0
        assert record.reserve_price == 90000.0
        assert record.square_footage == 65.5
        assert record.rooms == 3
        assert record.energy_class == "E"
        assert record.auction_venue == "Tribunal judiciaire de Lyon"
        assert record.property_type == "appartement"
        assert record.description == "Bel appartement lumineux"
        assert record.images == ["https://cdn.example.com/lot.jpg"]
        assert record.auction_date.date() == date(2024, 5, 29)

    def test_no_lot_returns_none(self):
        next_data = {"props": {"pageProps": {"apolloState": {"data": {"Other:1": {"__typename": "Vente"}}}}}}

        assert parse_lot(next_data, LOT_URL) is None

    def test_unexpected_structure_returns_none(self):
        assert parse_lot({"props": {}}, LOT_URL) is None


class TestAuctionDetailFetcher:
    """Test page-level extraction"""

    def make_fetcher(self, payload):
        session = Mock()
        session.page.evaluate = AsyncMock(return_value=payload)
        return AuctionDetailFetcher(session, item_delay=0, item_jitter=0)

    @pytest.mark.asyncio
    async def test_extract_reads_next_data(self, mock_next_data):
        fetcher = self.make_fetcher(json.dumps(mock_next_data))

        record = await fetcher.extract(LOT_URL)

        assert record.lot_id == "98765"

    @pytest.mark.asyncio
    async def test_missing_next_data_discards(self):
        fetcher = self.make_fetcher(None)

        assert await fetcher.extract(LOT_URL) is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        fetcher = self.make_fetcher("{not json")

        with pytest.raises(DataFormatError):
            await fetcher.extract(LOT_URL)
