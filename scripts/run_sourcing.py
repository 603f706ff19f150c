"""
Script to run one sourcing job synchronously, outside the queues
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import date, timedelta

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.logging import setup_logging
from core.database import engine
from ingestion.runner import create_processor
from models.base import JobKind, ProcessingStatus
from schemas.jobs import SourceJob

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Run a single sourcing job")
    parser.add_argument(
        "kind",
        choices=[kind.value for kind in JobKind],
        help="Job kind to run",
    )
    parser.add_argument(
        "--partition",
        default="all",
        help="Department code (API sources) or 'all' (scraping sources)",
    )
    parser.add_argument(
        "--since",
        type=date.fromisoformat,
        default=None,
        help="Start of the date window, YYYY-MM-DD (default: yesterday)",
    )
    parser.add_argument(
        "--before",
        type=date.fromisoformat,
        default=None,
        help="End of the date window, YYYY-MM-DD",
    )
    parser.add_argument(
        "--energy-classes",
        default=None,
        help="Comma-separated DPE classes for energy_diagnostics (default: F,G)",
    )
    return parser.parse_args()


async def run_sourcing(args) -> int:
    kind = JobKind(args.kind)
    extra_filters = {}
    if args.energy_classes:
        extra_filters["energy_classes"] = [c.strip().upper() for c in args.energy_classes.split(",") if c.strip()]

    job = SourceJob(
        job_kind=kind,
        partition_key=args.partition,
        since_date=args.since or date.today() - timedelta(days=1),
        before_date=args.before,
        extra_filters=extra_filters,
    )

    processor = create_processor(kind)
    try:
        stats = await processor.process(job)
        logger.info(f"Sourcing job {job.name} done: {stats.summary()}")
        return 0 if stats.status == ProcessingStatus.COMPLETED else 2
    except Exception as e:
        logger.error(f"Sourcing job {job.name} failed: {str(e)}")
        return 1
    finally:
        await processor.close()
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_sourcing(parse_args())))
