"""
Unit tests for the ADEME and BODACC fetchers
"""

import json
import httpx
import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock
from core.exceptions import DataFormatError, ExtractionError
from ingestion.extractors.ademe import AdemeDpeFetcher, build_query
from ingestion.extractors.bodacc import BodaccFetcher, CompanyRegistry, extract_siren, parse_csv, unique_sirens


class TestAdemeDpeFetcher:
    """Test DPE paging"""

    def test_build_query(self):
        query = build_query("1", date(2024, 1, 14), ["F", "G"], before_date=date(2024, 1, 20))

        assert query == (
            'code_departement_ban:"01" AND etiquette_dpe:(F OR G) '
            "AND date_etablissement_dpe:>=2024-01-14 AND date_etablissement_dpe:<=2024-01-20"
        )

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self, mock_client_factory, mock_dpe_rows):
        pages = {1: mock_dpe_rows, 2: mock_dpe_rows[:1]}
        requested = []

        def handler(request):
            page = int(request.url.params["page"])
            requested.append(page)
            return httpx.Response(200, json={"results": pages[page]})

        fetcher = AdemeDpeFetcher(client=mock_client_factory(handler), page_size=2)

        records = await fetcher.fetch_all("75", date(2024, 1, 14))

        assert requested == [1, 2]
        assert len(records) == 3
        assert records[0].geopoint == "48.8686,2.3314"
        assert records[0].kind == "dpe"

    @pytest.mark.asyncio
    async def test_400_after_some_pages_keeps_records(self, mock_client_factory, mock_dpe_rows):
        """The pagination-window 400 is answered once and never retried"""
        requested = []

        def handler(request):
            requested.append(request.url.params["page"])
            if request.url.params["page"] == "1":
                return httpx.Response(200, json={"results": mock_dpe_rows})
            return httpx.Response(400, json={"error": "pagination window exceeded"})

        fetcher = AdemeDpeFetcher(
            client=mock_client_factory(handler, max_retries=3, non_retry_statuses=(400,)),
            page_size=2,
        )

        records = await fetcher.fetch_all("75", date(2024, 1, 14))

        assert len(records) == 2
        assert requested == ["1", "2"]

    @pytest.mark.asyncio
    async def test_400_on_first_page_raises(self, mock_client_factory):
        fetcher = AdemeDpeFetcher(
            client=mock_client_factory(lambda request: httpx.Response(400), non_retry_statuses=(400,)),
            page_size=2,
        )

        with pytest.raises(ExtractionError) as exc_info:
            await fetcher.fetch_all("75", date(2024, 1, 14))

        assert exc_info.value.context["status_code"] == 400
        assert exc_info.value.context["page"] == 1

    @pytest.mark.asyncio
    async def test_default_client_does_not_retry_400(self):
        fetcher = AdemeDpeFetcher()

        assert 400 in fetcher.client.non_retry_statuses
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_data_format_error(self, mock_client_factory):
        fetcher = AdemeDpeFetcher(client=mock_client_factory(lambda request: httpx.Response(200, text="<html>")))

        with pytest.raises(DataFormatError):
            await fetcher.fetch_all("75", date(2024, 1, 14))


LISTEPERSONNES = json.dumps({
    "personne": {
        "typePersonne": "pm",
        "denomination": "BOULANGERIE DU PORT",
        "numeroImmatriculation": {"numeroIdentification": "123 456 789", "codeRCS": "RCS"},
    }
})

BODACC_CSV = (
    "numerodepartement;dateparution;commercant;ville;cp;listepersonnes;jugement\n"
    f'75;2024-01-15;BOULANGERIE DU PORT;Paris;75011;"{LISTEPERSONNES.replace(chr(34), chr(34) * 2)}";'
    '"{""nature"": ""Jugement d\'ouverture de liquidation judiciaire""}"\n'
    '75;2024-01-15;BOULANGERIE DU PORT;Paris;75011;"numero 123456789";\n'
)


class TestBodacc:
    """Test notice parsing and SIREN extraction"""

    def test_extract_siren_from_json(self):
        assert extract_siren(LISTEPERSONNES) == "123456789"

    def test_extract_siren_fallback_regex(self):
        assert extract_siren("not json 987654321 trailing") == "987654321"

    def test_extract_siren_invalid(self):
        bad = json.dumps({"personne": {"numeroImmatriculation": {"numeroIdentification": "12345"}}})

        assert extract_siren(bad) is None
        assert extract_siren("") is None

    def test_parse_csv_and_unique_sirens(self):
        rows = parse_csv(BODACC_CSV)

        assert len(rows) == 2
        assert rows[0]["numerodepartement"] == "75"
        sirens = unique_sirens(rows)
        assert [siren for siren, _ in sirens] == ["123456789"]

    def test_parse_empty_csv(self):
        assert parse_csv("") == []

    @pytest.mark.asyncio
    async def test_registry_lookup(self, mock_client_factory):
        payload = {
            "results": [{
                "nom_complet": "BOULANGERIE DU PORT",
                "siege": {"siret": "12345678900012", "adresse": "1 RUE DU PORT 75011 PARIS"},
                "matching_etablissements": [
                    {"siret": "12345678900012", "adresse": "1 RUE DU PORT 75011 PARIS"},
                    {"siret": "12345678900020", "adresse": "5 AVENUE DE LA MER 13002 MARSEILLE"},
                ],
            }]
        }
        registry = CompanyRegistry(client=mock_client_factory(lambda request: httpx.Response(200, json=payload)))

        name, establishments = await registry.get_establishments("123456789")

        assert name == "BOULANGERIE DU PORT"
        assert [e["siret"] for e in establishments] == ["12345678900012", "12345678900020"]

    @pytest.mark.asyncio
    async def test_registry_404_is_empty(self, mock_client_factory):
        registry = CompanyRegistry(
            client=mock_client_factory(lambda request: httpx.Response(404), non_retry_statuses=(404,))
        )

        assert await registry.get_establishments("123456789") == (None, [])

    @pytest.mark.asyncio
    async def test_fetch_all_isolates_failing_sirens(self, mock_client_factory):
        registry = Mock()
        registry.get_establishments = AsyncMock(side_effect=[
            ("BOULANGERIE DU PORT", [{
                "siret": "12345678900012",
                "adresse": "1 RUE DU PORT 75011 PARIS",
                "code_postal": "75011",
                "libelle_commune": "PARIS",
                "latitude": "48.86",
                "longitude": "2.37",
            }]),
            RuntimeError("registry down"),
        ])
        second = json.dumps({"personne": {"numeroImmatriculation": {"numeroIdentification": "987654321"}}})
        csv_text = BODACC_CSV + f'75;2024-01-16;AUTRE;Paris;75012;"{second.replace(chr(34), chr(34) * 2)}";\n'
        fetcher = BodaccFetcher(
            client=mock_client_factory(lambda request: httpx.Response(200, text=csv_text)),
            registry=registry,
        )

        records = await fetcher.fetch_all("75", date(2024, 1, 14))

        assert len(records) == 1
        assert fetcher.failed_sirens == 1
        assert records[0].siret == "12345678900012"
        assert records[0].latitude == 48.86
        assert records[0].publication_date == date(2024, 1, 15)
        assert records[0].judgement["nature"].startswith("Jugement")
