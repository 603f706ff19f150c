"""
Sourcing pipeline components.

Modules:
    http_client: Throttled, retrying HTTP client shared by every outbound call
    browser: Playwright session used by the scraping sources
    sources: One source per job kind (auctions, listings, energy diagnostics, failing companies)
    runner: Source processor running a job through fetch, transform, enrich and persist
    queue: In-process job queues with retry and retention policies
    scheduler: APScheduler cron triggers and per-department fan-out

Subpackages:
    extractors: Paginated link harvesting, detail pages and government API fetchers
    enrichment: Geocoding and AI address refinement
    transformers: Raw record normalization and validation
    loaders: Batch archive writer and insert-only Postgres store

Usage:
    from ingestion.runner import create_processor
    from schemas.jobs import SourceJob

    processor = create_processor(JobKind.ENERGY_DIAGNOSTICS)
    stats = await processor.process(
        SourceJob(job_kind=JobKind.ENERGY_DIAGNOSTICS, partition_key="75", since_date=date(2024, 1, 1))
    )
    print(stats.summary())

Error Handling:
    Only the fetch phase is fatal. Invalid records are counted, enrichment
    failures keep the record, and a persistence failure marks the job
    DEGRADED so that the queue re-attempts it.
"""

__all__ = [
    "RateLimitedClient",
    "BrowserSession",
    "SourceProcessor",
    "JobQueue",
    "QueueRegistry",
    "SourcingScheduler",
]
