"""
Pytest configuration and fixtures
"""

import pytest
from datetime import date
from typing import Callable, List, Optional, Sequence, Set
import httpx
from ingestion.http_client import RateLimitedClient
from models.base import JobKind, OpportunityType
from schemas.jobs import RetryPolicy, SourceJob
from schemas.normalized import CandidateRecord


class InMemoryOpportunityStore:
    """Insert-only store keyed by external_id, mirroring ON CONFLICT DO NOTHING"""

    def __init__(self, report_counts: bool = True):
        self.external_ids: Set[str] = set()
        self.rows: List[dict] = []
        self.calls: List[int] = []
        self.report_counts = report_counts

    async def insert_batch(self, records: Sequence[CandidateRecord]) -> Optional[int]:
        self.calls.append(len(records))
        inserted = 0
        for record in records:
            if record.external_id in self.external_ids:
                continue
            self.external_ids.add(record.external_id)
            self.rows.append(record.to_row())
            inserted += 1
        return inserted if self.report_counts else None


@pytest.fixture
def memory_store():
    return InMemoryOpportunityStore()


@pytest.fixture
def countless_store():
    """Store whose driver cannot report row counts"""
    return InMemoryOpportunityStore(report_counts=False)


@pytest.fixture
def make_candidate() -> Callable[..., CandidateRecord]:
    """Factory for complete candidate records"""

    def _make(external_id: str = "dpe-001", **overrides) -> CandidateRecord:
        values = {
            "external_id": external_id,
            "opportunity_type": OpportunityType.ENERGY_SIEVE,
            "label": "12 rue de la Paix 75002 Paris",
            "address": "12 rue de la Paix 75002 Paris",
            "zip_code": "75002",
            "department": "75",
            "latitude": 48.8686,
            "longitude": 2.3314,
            "opportunity_date": date(2024, 1, 15),
            "payload": {"energyClass": "G"},
        }
        values.update(overrides)
        return CandidateRecord(**values)

    return _make


@pytest.fixture
def make_job() -> Callable[..., SourceJob]:
    """Factory for source jobs that retry immediately"""

    def _make(kind: JobKind = JobKind.ENERGY_DIAGNOSTICS, partition_key: str = "75", **overrides) -> SourceJob:
        values = {
            "job_kind": kind,
            "partition_key": partition_key,
            "since_date": date(2024, 1, 14),
            "retry_policy": RetryPolicy(max_attempts=3, backoff="fixed", backoff_delay=0),
        }
        values.update(overrides)
        return SourceJob(**values)

    return _make


@pytest.fixture
def mock_client_factory() -> Callable[..., RateLimitedClient]:
    """Build a RateLimitedClient whose transport is an httpx.MockTransport"""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> RateLimitedClient:
        kwargs.setdefault("retry_delay", 0)
        return RateLimitedClient("test", transport=httpx.MockTransport(handler), **kwargs)

    return _make


@pytest.fixture
def mock_dpe_rows():
    """ADEME API rows as returned by the lines endpoint"""
    return [
        {
            "numero_dpe": "2475E0123456A",
            "adresse_ban": "12 Rue de la Paix 75002 Paris",
            "code_postal_ban": "75002",
            "nom_commune_ban": "Paris",
            "code_departement_ban": "75",
            "etiquette_dpe": "G",
            "etiquette_ges": "F",
            "_geopoint": "48.8686,2.3314",
            "date_etablissement_dpe": "2024-01-15",
            "type_batiment": "appartement",
            "annee_construction": 1930,
            "surface_habitable_logement": 42.5,
        },
        {
            "numero_dpe": "2475E0654321B",
            "adresse_ban": "3 Boulevard Voltaire 75011 Paris",
            "code_postal_ban": "75011",
            "nom_commune_ban": "Paris",
            "code_departement_ban": "75",
            "etiquette_dpe": "F",
            "etiquette_ges": "E",
            "_geopoint": "48.8662,2.3665",
            "date_etablissement_dpe": "2024-01-16",
            "type_batiment": "maison",
            "surface_habitable_logement": 88.0,
        },
    ]


@pytest.fixture
def mock_next_data():
    """__NEXT_DATA__ payload of an encheres-publiques lot page"""
    return {
        "query": {"lot_id": "98765", "categorie": "immobilier", "sous_categorie": "appartement"},
        "props": {
            "pageProps": {
                "apolloState": {
                    "data": {
                        "Lot:98765": {
                            "__typename": "Lot",
                            "id": "98765",
                            "nom": "Appartement 3 pièces située à Lyon",
                            "description": "Bel&nbsp;appartement   lumineux",
                            "adresse_physique": {"__ref": "Adresse:1"},
                            "fermeture_date": 1717000000,
                            "offre_actuelle": "125000",
                            "estimation_basse": "100 000",
                            "prix_plancher": 90000,
                            "critere_surface_habitable": "65,5",
                            "critere_nombre_de_pieces": "3",
                            "critere_consommation_energetique": "E",
                            "organisateur": {"nom": "Tribunal judiciaire de Lyon"},
                            "photo": "https://cdn.example.com/lot.jpg",
                        },
                        "Adresse:1": {
                            "text": "8 Rue Mercière, 69002 Lyon",
                            "ville": "Lyon",
                            "coords": [4.8320, 45.7620],
                        },
                    }
                }
            }
        },
    }
