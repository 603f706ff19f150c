"""
Core utilities and configuration for the opportunity sourcing pipeline.

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import FetchExhausted, LoadError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "FetchExhausted",
    "BrowserError",
    "TransformationError",
    "ValidationError",
    "DataFormatError",
    "EnrichmentError",
    "LoadError",
    "DatabaseError",
    "JobEnqueueError",
    "RetryableError",
    "NonRetryableError",
]
