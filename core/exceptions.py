"""
Custom exceptions for the sourcing pipeline with structured error context.

Every exception carries a context dictionary and, when it wraps another
failure, chains it through ``__cause__`` so the whole story ends up in logs
and in the per-job statistics.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── FetchExhausted (also RetryableError)
    │   └── BrowserError
    ├── TransformationError
    │   ├── ValidationError
    │   └── DataFormatError (also NonRetryableError)
    ├── EnrichmentError
    ├── LoadError
    │   └── DatabaseError
    ├── JobEnqueueError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, partition, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/stats."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that a later attempt may resolve.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 503)
    """


class NonRetryableError(ETLException):
    """
    Mixin for errors that will fail the same way on every attempt.

    Use this for permanent errors like:
    - Invalid data format
    - Resource not found (HTTP 404)
    """


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class FetchExhausted(RetryableError, ExtractionError):
    """
    Raised by the rate-limited client once every attempt has failed.

    Attributes:
        attempts: Number of attempts that were made
        last_error: The failure observed on the final attempt
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        last_error: Optional[BaseException] = None,
        attempts: int = 0
    ):
        super().__init__(message, context, last_error)
        self.last_error = last_error
        self.attempts = attempts
        self.context["attempts"] = attempts


class BrowserError(ExtractionError):
    """
    Exception raised when the headless browser cannot be acquired or a
    page cannot be driven.

    Context should include:
        - url: The page being loaded (if applicable)
        - status_code: HTTP status of the navigation (if applicable)
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    pass


class ValidationError(TransformationError):
    """
    Exception raised when a record is missing a mandatory field.

    Context should include:
        - field_name: Name of the field that failed validation
        - external_id: Identifier of the record (if known)
    """
    pass


class DataFormatError(NonRetryableError, TransformationError):
    """Payload could not be parsed at all (bad JSON, bad CSV)."""
    pass


# ============================================================================
# Enrichment Errors
# ============================================================================

class EnrichmentError(ETLException):
    """
    Exception raised by geocoding or address refinement.

    Never fatal for a record: callers log it and keep the original data.
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """
    Base exception for persistence failures.

    Context should include:
        - batch_index: Index of the failing batch
        - inserted_so_far: Rows committed by earlier batches
    """
    pass


class DatabaseError(LoadError):
    """
    Exception raised when a database statement fails.

    Context should include:
        - operation: Type of database operation (INSERT)
        - table_name: Name of the table
    """
    pass


# ============================================================================
# Scheduling Errors
# ============================================================================

class JobEnqueueError(ETLException):
    """Raised when a job cannot be submitted to its queue."""
    pass
