"""
Pydantic schemas for data validation and serialization.

Schemas:
    jobs: Sourcing jobs, retry/removal policies and API payloads
    raw: Tagged raw records, one model per source kind
    normalized: Canonical candidate records
    enrichment: Geocoding and address refinement results
    stats: Per-job processing statistics

Usage:
    from schemas.jobs import SourceJob
    from schemas.normalized import CandidateRecord
"""

__all__ = [
    "SourceJob",
    "RetryPolicy",
    "RemovalPolicy",
    "RawRecord",
    "CandidateRecord",
    "GeocodeResult",
    "AddressRefinement",
    "ProcessingStats",
]
