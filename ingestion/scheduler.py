import logging
import asyncio
from datetime import date, timedelta
from typing import Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import settings
from core.exceptions import JobEnqueueError
from ingestion.queue import QueueRegistry
from models.base import JobKind
from schemas.jobs import SourceJob

logger = logging.getLogger(__name__)

# (hour, minute) in the scheduler timezone
DAILY_SCHEDULE: Dict[JobKind, tuple] = {
    JobKind.ENERGY_DIAGNOSTICS: (1, 0),
    JobKind.FAILING_COMPANIES: (1, 30),
    JobKind.AUCTIONS: (2, 0),
    JobKind.LISTINGS: (3, 0),
}

# Scraped sites are harvested nationwide in a single job
NATIONAL_KINDS = {JobKind.AUCTIONS, JobKind.LISTINGS}
NATIONAL_PARTITION = "all"

DPE_ENERGY_CLASSES = ["F", "G"]


def build_partitions(
    kind: JobKind,
    since_date: date,
    before_date: Optional[date] = None,
    departments: Optional[List[str]] = None,
    energy_classes: Optional[List[str]] = None,
) -> List[SourceJob]:
    """One job per department; energy diagnostics are also split per energy class."""
    if kind in NATIONAL_KINDS:
        return [SourceJob(job_kind=kind, partition_key=NATIONAL_PARTITION, since_date=since_date, before_date=before_date)]

    jobs = []
    for department in departments or settings.DEPARTMENTS:
        if kind == JobKind.ENERGY_DIAGNOSTICS:
            for energy_class in energy_classes or DPE_ENERGY_CLASSES:
                jobs.append(SourceJob(
                    job_kind=kind,
                    partition_key=department,
                    since_date=since_date,
                    before_date=before_date,
                    extra_filters={"energy_classes": [energy_class]},
                ))
        else:
            jobs.append(SourceJob(
                job_kind=kind,
                partition_key=department,
                since_date=since_date,
                before_date=before_date,
            ))
    return jobs


class SourcingScheduler:
    def __init__(self, queues: QueueRegistry, timezone: str = settings.SCHEDULER_TIMEZONE):
        self.queues = queues
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.timezone = timezone

    async def fan_out(self, kind: JobKind, since_date: Optional[date] = None) -> int:
        """
        Enqueue every partition job for ``kind`` concurrently.

        A failing enqueue is logged and skipped; returns how many jobs made it.
        """
        since_date = since_date or date.today() - timedelta(days=1)
        jobs = build_partitions(kind, since_date)
        logger.info(f"Scheduler: fanning out {len(jobs)} {kind.value} job(s) since {since_date}")

        async def submit(job: SourceJob) -> bool:
            try:
                await self.queues.enqueue(job)
                return True
            except Exception as e:
                error = e if isinstance(e, JobEnqueueError) else JobEnqueueError(
                    "Failed to enqueue job",
                    context={"job": job.name},
                    original_exception=e
                )
                logger.error(
                    f"Scheduler: failed to enqueue {job.name}: {error.message}",
                    extra={"error_context": error.to_dict()}
                )
                return False

        results = await asyncio.gather(*(submit(job) for job in jobs))
        enqueued = sum(results)
        logger.info(f"Scheduler: enqueued {enqueued}/{len(jobs)} {kind.value} job(s)")
        return enqueued

    async def run_daily(self, kind: JobKind):
        """Cron entry point; never raises so other jobs keep their schedule"""
        try:
            await self.fan_out(kind)
        except Exception as e:
            logger.error(f"Scheduler: daily {kind.value} fan-out failed - {e}")

    def start(self):
        """Register one daily cron trigger per job kind and start the scheduler"""
        for kind, (hour, minute) in DAILY_SCHEDULE.items():
            self.scheduler.add_job(
                self.run_daily,
                trigger=CronTrigger(hour=hour, minute=minute, timezone=self.timezone),
                args=[kind],
                id=f"daily_{kind.value}",
                replace_existing=True
            )
        self.scheduler.start()
        logger.info("Sourcing Scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sourcing Scheduler stopped")
