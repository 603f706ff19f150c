"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Dict
from datetime import datetime, timezone


# ============================================================================
# Health Check Schemas
# ============================================================================

class QueueCounts(BaseModel):
    """Job counts for one queue"""
    waiting: int = 0
    active: int = 0
    delayed: int = 0
    completed: int = 0
    failed: int = 0


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    database_connected: bool
    queues: Dict[str, QueueCounts] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "queues": {
                    "energy_diagnostics": {
                        "waiting": 12,
                        "active": 1,
                        "delayed": 0,
                        "completed": 100,
                        "failed": 2
                    }
                }
            }
        }


def overall_status(database_connected: bool, queues: Dict[str, QueueCounts]) -> str:
    """unhealthy without a database; degraded when every recent job of a queue failed"""
    if not database_connected:
        return "unhealthy"
    for counts in queues.values():
        if counts.failed and not counts.completed:
            return "degraded"
    return "healthy"
