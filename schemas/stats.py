"""
Per-job processing statistics
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from models.base import ProcessingStatus


class ProcessingStats(BaseModel):
    """
    Counters accumulated while a job runs, returned once as the job result.

    ``fetched == valid + invalid`` once transformation and final validation
    are over; ``inserted + duplicates_skipped == valid`` whenever
    persistence succeeded.
    """

    fetched: int = 0
    valid: int = 0
    invalid: int = 0
    inserted: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    geocoded: int = 0
    refined: int = 0
    status: ProcessingStatus = ProcessingStatus.FETCHING
    duration_seconds: Optional[float] = None
    error_details: List[Dict[str, Any]] = Field(default_factory=list)

    def record_error(self, phase: str, error: Exception, **context: Any) -> None:
        self.errors += 1
        self.error_details.append({
            "phase": phase,
            "error_type": type(error).__name__,
            "error_message": str(error),
            **context,
        })

    def summary(self) -> str:
        return (
            f"status={self.status.value} fetched={self.fetched} valid={self.valid} "
            f"invalid={self.invalid} inserted={self.inserted} "
            f"duplicates={self.duplicates_skipped} geocoded={self.geocoded} "
            f"refined={self.refined} errors={self.errors} "
            f"duration={self.duration_seconds or 0:.1f}s"
        )
