"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (JobKind, OpportunityType, ProcessingStatus)
    opportunity: The shared, insert-only opportunities table

Usage:
    from models.opportunity import Opportunity
    from models.base import JobKind, OpportunityType
"""

__all__ = [
    "Base",
    "JobKind",
    "OpportunityType",
    "ProcessingStatus",
    "Opportunity",
]
