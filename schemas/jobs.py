"""
Pydantic schemas for sourcing jobs
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any, Literal
from datetime import date
from models.base import JobKind
from core.config import settings


class RetryPolicy(BaseModel):
    """How the queue re-attempts a job that failed or came back degraded"""

    max_attempts: int = Field(default_factory=lambda: settings.JOB_MAX_ATTEMPTS, ge=1)
    backoff: Literal["exponential", "linear", "fixed"] = "exponential"
    backoff_delay: float = Field(default_factory=lambda: settings.JOB_BACKOFF_SECONDS, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        if self.backoff == "exponential":
            return self.backoff_delay * (2 ** (attempt - 1))
        if self.backoff == "linear":
            return self.backoff_delay * attempt
        return self.backoff_delay

    class Config:
        frozen = True


class RemovalPolicy(BaseModel):
    """How many finished job records the queue keeps around"""

    keep_completed: int = Field(default_factory=lambda: settings.JOB_KEEP_COMPLETED, ge=0)
    keep_failed: int = Field(default_factory=lambda: settings.JOB_KEEP_FAILED, ge=0)

    class Config:
        frozen = True


class SourceJob(BaseModel):
    """
    One unit of harvesting work: a source kind restricted to a partition
    (usually a department) and a date window.

    Jobs are immutable once enqueued; re-attempts reuse the same instance.
    """

    job_kind: JobKind
    partition_key: str = Field(..., min_length=1)
    since_date: date
    before_date: Optional[date] = None
    extra_filters: Dict[str, Any] = Field(default_factory=dict)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    removal_policy: RemovalPolicy = Field(default_factory=RemovalPolicy)

    @validator("partition_key")
    def clean_partition_key(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("partition_key cannot be empty")
        return v

    @validator("before_date")
    def check_date_window(cls, v, values):
        since = values.get("since_date")
        if v is not None and since is not None and v < since:
            raise ValueError("before_date must not precede since_date")
        return v

    @property
    def name(self) -> str:
        return f"{self.job_kind.value}:{self.partition_key}"

    class Config:
        frozen = True


class EnqueueJobRequest(BaseModel):
    """Body of a manual enqueue request"""

    partition_key: str = Field(..., min_length=1)
    since_date: Optional[date] = None
    before_date: Optional[date] = None
    extra_filters: Dict[str, Any] = Field(default_factory=dict)


class EnqueueJobResponse(BaseModel):
    success: bool
    job_id: str
    message: str


class FanOutResponse(BaseModel):
    success: bool
    job_kind: JobKind
    enqueued: int
