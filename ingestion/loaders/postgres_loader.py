"""
Load candidate records into PostgreSQL with insert-only conflict handling (idempotency)
"""

from typing import List, Optional, Protocol, Sequence
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.dialects.postgresql import insert
from models.opportunity import Opportunity
from schemas.normalized import CandidateRecord
from core.config import settings
from core.exceptions import DatabaseError, LoadError
import logging

logger = logging.getLogger(__name__)


class OpportunityStore(Protocol):
    """Anything able to insert a batch of records and report how many were new"""

    async def insert_batch(self, records: Sequence[CandidateRecord]) -> Optional[int]:
        ...


class PostgresOpportunityStore:
    """
    Insert opportunities with ``ON CONFLICT (external_id) DO NOTHING``.

    Ensures:
    - No duplicate rows on repeated runs
    - Existing rows are never modified
    - One transaction per batch
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def insert_batch(self, records: Sequence[CandidateRecord]) -> Optional[int]:
        """
        Returns:
            Number of new rows, or None when the driver cannot tell
        """
        if not records:
            return 0

        stmt = (
            insert(Opportunity)
            .values([record.to_row() for record in records])
            .on_conflict_do_nothing(index_elements=["external_id"])
        )

        async with self.session_maker() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise DatabaseError(
                    "Failed to insert opportunity batch",
                    context={
                        "operation": "INSERT",
                        "table_name": Opportunity.__tablename__,
                        "batch_size": len(records)
                    },
                    original_exception=e
                )

        rowcount = result.rowcount
        return None if rowcount is None or rowcount < 0 else rowcount


class BatchArchiveWriter:
    """
    Write records in fixed-size chunks, one store call per chunk.

    A failing chunk aborts the remaining ones; chunks already written stay
    committed.
    """

    def __init__(self, store: OpportunityStore, batch_size: int = settings.ETL_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size

    async def write(self, records: List[CandidateRecord]) -> int:
        """
        Returns:
            Total number of inserted rows across chunks

        Raises:
            LoadError: when a chunk cannot be written
        """
        total_inserted = 0

        for batch_index, start in enumerate(range(0, len(records), self.batch_size)):
            batch = records[start:start + self.batch_size]

            try:
                count = await self.store.insert_batch(batch)
            except Exception as e:
                raise LoadError(
                    "Failed to write batch",
                    context={
                        "batch_index": batch_index,
                        "batch_size": len(batch),
                        "inserted_so_far": total_inserted
                    },
                    original_exception=e
                )

            if count is None:
                logger.warning(
                    f"Batch {batch_index + 1}: store did not report a row count, "
                    f"assuming all {len(batch)} records were inserted"
                )
                count = len(batch)

            total_inserted += count
            logger.info(f"Batch {batch_index + 1}: Inserted {count}/{len(batch)} records")

        return total_inserted
