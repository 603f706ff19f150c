# ============================================================================
# File: ingestion/runner.py
# Description: Per-job sourcing orchestrator with partial-failure isolation
# ============================================================================
"""
Source Processor - runs one SourceJob through Fetch, Transform, Enrich, Persist.

This module provides:
- One fatal phase (fetching); every later failure is contained
- Per-record isolation during transformation and enrichment
- Deduplicating batch writes through the BatchArchiveWriter
- ProcessingStats logged and returned on every path
"""

import time
from typing import List, Optional

from ingestion.enrichment.address_refiner import AddressRefiner
from ingestion.enrichment.geocoder import Geocoder
from ingestion.loaders.postgres_loader import BatchArchiveWriter, OpportunityStore, PostgresOpportunityStore
from ingestion.sources import OpportunitySource, create_source
from ingestion.transformers.normalizer import RecordNormalizer
from models.base import JobKind, ProcessingStatus
from schemas.jobs import SourceJob
from schemas.normalized import CandidateRecord
from schemas.stats import ProcessingStats
from core.config import settings
from core.database import async_session_maker
from core.exceptions import (
    ExtractionError,
    LoadError,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


class SourceProcessor:
    """
    Per-job orchestrator.

    Responsibilities:
    - Fetch raw records from the source (fatal on failure)
    - Normalize and validate every record, counting rejects
    - Refine and geocode where the source asks for it
    - Write complete records in batches
    - Report ProcessingStats, never persisted
    """

    def __init__(
        self,
        source: OpportunitySource,
        writer: BatchArchiveWriter,
        normalizer: Optional[RecordNormalizer] = None,
        geocoder: Optional[Geocoder] = None,
        refiner: Optional[AddressRefiner] = None,
    ):
        self.source = source
        self.writer = writer
        self.normalizer = normalizer or RecordNormalizer()
        self.geocoder = geocoder
        self.refiner = refiner

    async def process(self, job: SourceJob) -> ProcessingStats:
        """
        Run the job end to end.

        Returns:
            ProcessingStats with status COMPLETED or DEGRADED

        Raises:
            ExtractionError: when the fetch phase fails; stats are logged first
        """
        stats = ProcessingStats()
        started = time.monotonic()
        logger.info(f"Processing job {job.name} (since {job.since_date})")

        try:
            # --------------------------------------------------
            # PHASE 1: FETCHING
            # --------------------------------------------------
            stats.status = ProcessingStatus.FETCHING

            try:
                raw_records = await self.source.fetch(job)
            except ExtractionError:
                raise
            except Exception as e:
                raise ExtractionError(
                    "Unexpected error during fetch",
                    context={"job": job.name},
                    original_exception=e
                )

            stats.fetched = len(raw_records)
            logger.info(f"Fetched {stats.fetched} raw records for {job.name}")

            # --------------------------------------------------
            # PHASE 2: TRANSFORMING / VALIDATING
            # --------------------------------------------------
            stats.status = ProcessingStatus.TRANSFORMING
            candidates: List[CandidateRecord] = []

            for raw in raw_records:
                try:
                    candidates.append(self.normalizer.normalize(raw))
                except ValidationError as e:
                    stats.invalid += 1
                    logger.debug(f"Rejected {raw.kind} record: {e}")

            logger.info(
                f"Normalization complete: {len(candidates)} succeeded, {stats.invalid} invalid"
            )

            # --------------------------------------------------
            # PHASE 3: ENRICHING
            # --------------------------------------------------
            stats.status = ProcessingStatus.ENRICHING

            for candidate in candidates:
                await self._enrich(candidate, stats)

            # Final validation: only complete records are written
            complete: List[CandidateRecord] = []
            for candidate in candidates:
                if candidate.is_complete():
                    complete.append(candidate)
                else:
                    stats.invalid += 1
                    logger.debug(f"Incomplete record dropped: {candidate.external_id}")

            stats.valid = len(complete)

            # --------------------------------------------------
            # PHASE 4: PERSISTING
            # --------------------------------------------------
            stats.status = ProcessingStatus.PERSISTING

            if complete:
                try:
                    stats.inserted = await self.writer.write(complete)
                    stats.duplicates_skipped = max(0, stats.valid - stats.inserted)
                    stats.status = ProcessingStatus.COMPLETED
                except LoadError as e:
                    # Chunks written before the failure stay committed
                    stats.inserted = e.context.get("inserted_so_far", 0)
                    stats.record_error("persisting", e, **e.context)
                    stats.status = ProcessingStatus.DEGRADED
                    logger.error(
                        f"Persistence failed for {job.name}: {e.message}",
                        extra={"error_context": e.to_dict()}
                    )
            else:
                logger.warning(f"No complete records to persist for {job.name}")
                stats.status = ProcessingStatus.COMPLETED

            return stats

        except ExtractionError as e:
            stats.status = ProcessingStatus.FAILED
            stats.record_error("fetching", e)
            logger.error(
                f"Fetch failed for {job.name}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            raise

        finally:
            stats.duration_seconds = time.monotonic() - started
            logger.info(f"Job {job.name} finished: {stats.summary()}")

    async def _enrich(self, candidate: CandidateRecord, stats: ProcessingStats):
        """Refine then geocode; any failure keeps the record as it was."""
        if self.source.use_refiner and self.refiner is not None and self.refiner.enabled and candidate.address:
            try:
                refinement = await self.refiner.refine_address(
                    candidate.address,
                    {
                        "title": candidate.label,
                        "description": candidate.payload.get("description"),
                        "city": candidate.payload.get("city"),
                    },
                )
                if refinement is not None and refinement.refined_address.strip():
                    candidate.refined_address = refinement.refined_address
                    candidate.address_confidence = refinement.confidence
                    candidate.address = refinement.refined_address
                    if candidate.payload.get("city") and candidate.payload["city"] not in refinement.refined_address:
                        candidate.address = f"{refinement.refined_address}, {candidate.payload['city']}"
                    stats.refined += 1
            except Exception as e:
                logger.warning(f"Address refinement failed for {candidate.external_id}, keeping original: {e}")

        needs_coordinates = candidate.latitude is None or candidate.longitude is None
        if self.source.geocode_missing and self.geocoder is not None and needs_coordinates and candidate.address:
            try:
                result = await self.geocoder.geocode(candidate.address, candidate.zip_code)
                if result is not None:
                    candidate.latitude = result.latitude
                    candidate.longitude = result.longitude
                    if result.postcode and not candidate.zip_code:
                        candidate.zip_code = result.postcode
                    stats.geocoded += 1
            except Exception as e:
                logger.warning(f"Geocoding failed for {candidate.external_id}, keeping record: {e}")

    async def close(self):
        """Release the HTTP clients owned by the source and the enrichers."""
        await self.source.close()
        if self.geocoder is not None:
            await self.geocoder.close()
        if self.refiner is not None:
            await self.refiner.close()


def create_processor(kind: JobKind, store: Optional[OpportunityStore] = None) -> SourceProcessor:
    """Wire the default source, enrichers and Postgres writer for a job kind."""
    source = create_source(kind)
    store = store or PostgresOpportunityStore(async_session_maker)
    return SourceProcessor(
        source=source,
        writer=BatchArchiveWriter(store, batch_size=settings.ETL_BATCH_SIZE),
        geocoder=Geocoder() if source.geocode_missing else None,
        refiner=AddressRefiner() if source.use_refiner else None,
    )
