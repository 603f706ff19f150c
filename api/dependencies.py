"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import get_session
from ingestion.queue import QueueRegistry
from ingestion.scheduler import SourcingScheduler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_queues(request: Request) -> QueueRegistry:
    return request.app.state.queues


def get_scheduler(request: Request) -> SourcingScheduler:
    return request.app.state.scheduler
