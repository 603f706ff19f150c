"""
Health check endpoint with database and queue status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db, get_queues
from ingestion.queue import QueueRegistry
from schemas.api import HealthCheckResponse, QueueCounts, overall_status
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    queues: QueueRegistry = Depends(get_queues),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Job counts for every queue
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    counts = {kind: QueueCounts(**values) for kind, values in queues.counts().items()}

    return HealthCheckResponse(
        status=overall_status(db_connected, counts),
        database_connected=db_connected,
        queues=counts,
    )
