"""
Unit tests for the in-process job queues
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, Mock
from core.exceptions import ExtractionError, JobEnqueueError
from ingestion.queue import JobQueue, QueueRegistry
from models.base import JobKind, ProcessingStatus
from schemas.jobs import RemovalPolicy, RetryPolicy
from schemas.stats import ProcessingStats


def completed_stats() -> ProcessingStats:
    return ProcessingStats(status=ProcessingStatus.COMPLETED, fetched=1, valid=1, inserted=1)


def make_processor(*outcomes):
    """Processor whose successive process() calls yield the given outcomes"""
    processor = Mock()
    processor.process = AsyncMock(side_effect=list(outcomes) or None, return_value=completed_stats())
    processor.close = AsyncMock()
    return processor


class TestJobQueue:
    """Test attempts, retries and retention"""

    @pytest.mark.asyncio
    async def test_enqueue_and_process(self, make_job):
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, make_processor(completed_stats()))

        job_id = await queue.enqueue(make_job())
        assert queue.counts()["waiting"] == 1

        record = await queue.process_next()

        assert record.job_id == job_id
        assert record.state == "completed"
        assert record.attempts == 1
        assert record.stats.inserted == 1
        assert queue.get(job_id) is record
        assert queue.counts() == {"waiting": 0, "active": 0, "delayed": 0, "completed": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_failed_attempt_is_retried(self, make_job):
        processor = make_processor(ExtractionError("site unreachable"), completed_stats())
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, processor)
        job_id = await queue.enqueue(make_job())

        first = await queue.process_next()
        assert first.state == "delayed"
        assert first.error is not None
        assert queue.counts()["delayed"] == 1

        second = await asyncio.wait_for(queue.process_next(), timeout=1)

        assert second.job_id == job_id
        assert second.state == "completed"
        assert second.attempts == 2
        assert second.error is None

    @pytest.mark.asyncio
    async def test_degraded_result_is_retried(self, make_job):
        processor = make_processor(
            ProcessingStats(status=ProcessingStatus.DEGRADED, errors=1),
            completed_stats(),
        )
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, processor)
        await queue.enqueue(make_job())

        first = await queue.process_next()
        assert first.state == "delayed"

        second = await asyncio.wait_for(queue.process_next(), timeout=1)
        assert second.state == "completed"
        assert processor.process.await_count == 2

    @pytest.mark.asyncio
    async def test_fails_after_max_attempts(self, make_job):
        processor = make_processor(*[RuntimeError("boom")] * 2)
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, processor)
        job = make_job(retry_policy=RetryPolicy(max_attempts=2, backoff="fixed", backoff_delay=0))
        job_id = await queue.enqueue(job)

        await queue.process_next()
        record = await asyncio.wait_for(queue.process_next(), timeout=1)

        assert record.state == "failed"
        assert record.attempts == 2
        assert record.error == "boom"
        assert record.finished_at is not None
        assert queue.get(job_id) is record
        assert queue.counts()["failed"] == 1

    @pytest.mark.asyncio
    async def test_history_is_capped(self, make_job):
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, make_processor())
        policy = RemovalPolicy(keep_completed=2, keep_failed=1)
        job_ids = [await queue.enqueue(make_job(partition_key=f"0{i}", removal_policy=policy)) for i in range(1, 4)]

        for _ in job_ids:
            await queue.process_next()

        assert queue.counts()["completed"] == 2
        assert queue.get(job_ids[0]) is None
        assert queue.get(job_ids[2]) is not None

    @pytest.mark.asyncio
    async def test_rejects_other_kinds(self, make_job):
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, make_processor())

        with pytest.raises(JobEnqueueError):
            await queue.enqueue(make_job(JobKind.AUCTIONS, "all"))

    @pytest.mark.asyncio
    async def test_workers_drain_queue(self, make_job):
        processor = make_processor()
        queue = JobQueue(JobKind.ENERGY_DIAGNOSTICS, processor, concurrency=2)
        for department in ("75", "69", "13"):
            await queue.enqueue(make_job(partition_key=department))

        queue.start()
        assert queue.running
        await asyncio.wait_for(queue._queue.join(), timeout=1)
        await queue.stop()

        assert queue.counts()["completed"] == 3
        assert not queue.running
        processor.close.assert_awaited_once()


class TestQueueRegistry:
    """Test routing by job kind"""

    @pytest.mark.asyncio
    async def test_routes_to_matching_queue(self, make_job):
        registry = QueueRegistry.create(
            processor_factory=lambda kind: make_processor(),
            kinds=[JobKind.ENERGY_DIAGNOSTICS, JobKind.AUCTIONS],
        )

        await registry.enqueue(make_job(JobKind.AUCTIONS, "all"))

        counts = registry.counts()
        assert set(counts) == {"energy_diagnostics", "auctions"}
        assert counts["auctions"]["waiting"] == 1
        assert counts["energy_diagnostics"]["waiting"] == 0

    @pytest.mark.asyncio
    async def test_unknown_kind_is_rejected(self, make_job):
        registry = QueueRegistry.create(processor_factory=lambda kind: make_processor(), kinds=[JobKind.AUCTIONS])

        with pytest.raises(JobEnqueueError):
            await registry.enqueue(make_job(JobKind.LISTINGS, "all"))

    def test_default_creates_one_queue_per_kind(self):
        registry = QueueRegistry.create(processor_factory=lambda kind: make_processor())

        assert set(registry.queues) == set(JobKind)
