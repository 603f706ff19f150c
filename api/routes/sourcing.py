"""
Manual triggers for sourcing jobs and queue monitoring
"""

from datetime import date, timedelta
from typing import Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError as PydanticValidationError
from api.dependencies import get_queues, get_scheduler
from core.exceptions import JobEnqueueError
from ingestion.queue import QueueRegistry
from ingestion.scheduler import SourcingScheduler
from models.base import JobKind
from schemas.api import QueueCounts
from schemas.jobs import EnqueueJobRequest, EnqueueJobResponse, FanOutResponse, SourceJob
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Sourcing"])


@router.get("/queues", response_model=Dict[str, QueueCounts])
async def get_queue_counts(queues: QueueRegistry = Depends(get_queues)):
    """Waiting, active, delayed, completed and failed jobs per queue"""
    return {kind: QueueCounts(**values) for kind, values in queues.counts().items()}


@router.post(
    "/sourcing/jobs/{kind}",
    response_model=EnqueueJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_job(
    kind: JobKind,
    body: EnqueueJobRequest,
    request: Request,
    queues: QueueRegistry = Depends(get_queues),
):
    """
    Enqueue a single partition job.

    ``since_date`` defaults to yesterday.
    """
    request_id = getattr(request.state, "request_id", None)

    try:
        job = SourceJob(
            job_kind=kind,
            partition_key=body.partition_key,
            since_date=body.since_date or date.today() - timedelta(days=1),
            before_date=body.before_date,
            extra_filters=body.extra_filters,
        )
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        job_id = await queues.enqueue(job)
    except JobEnqueueError as e:
        logger.error(
            f"[{request_id}] Failed to enqueue {job.name}: {e.message}",
            extra={"error_context": e.to_dict()}
        )
        raise HTTPException(status_code=503, detail=e.message)

    logger.info(f"[{request_id}] Enqueued {job.name} as {job_id}")
    return EnqueueJobResponse(
        success=True,
        job_id=job_id,
        message=f"Job {job.name} enqueued",
    )


@router.post("/sourcing/fan-out/{kind}", response_model=FanOutResponse)
async def fan_out(
    kind: JobKind,
    since_date: Optional[date] = Query(None, description="Defaults to yesterday"),
    scheduler: SourcingScheduler = Depends(get_scheduler),
):
    """Enqueue every partition of a job kind, as the daily cron does"""
    enqueued = await scheduler.fan_out(kind, since_date)
    return FanOutResponse(success=enqueued > 0, job_kind=kind, enqueued=enqueued)
