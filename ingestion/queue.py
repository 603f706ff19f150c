"""
In-process job queues, one per job kind.

Each queue hands its jobs to a SourceProcessor through a fixed number of
worker tasks and applies the job's retry and removal policies:
- a job that raises, or comes back DEGRADED, is re-attempted after the
  policy's backoff until ``max_attempts`` is reached
- finished job records are kept up to ``keep_completed`` / ``keep_failed``
"""

import asyncio
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Literal, Optional, Set
from pydantic import BaseModel
from core.config import settings
from core.exceptions import ETLException, JobEnqueueError
from ingestion.runner import SourceProcessor, create_processor
from models.base import JobKind, ProcessingStatus
from schemas.jobs import SourceJob
from schemas.stats import ProcessingStats
import logging

logger = logging.getLogger(__name__)

JobState = Literal["waiting", "active", "delayed", "completed", "failed"]


class JobRecord(BaseModel):
    """Queue-side bookkeeping for one enqueued job"""

    job_id: str
    job: SourceJob
    state: JobState = "waiting"
    attempts: int = 0
    stats: Optional[ProcessingStats] = None
    error: Optional[str] = None
    enqueued_at: datetime
    finished_at: Optional[datetime] = None


class JobQueue:
    """
    FIFO queue plus worker tasks for a single job kind.

    Attributes:
        kind: Job kind accepted by this queue
        processor: Runs one job and returns its ProcessingStats
        concurrency: Number of worker tasks
    """

    def __init__(
        self,
        kind: JobKind,
        processor: SourceProcessor,
        concurrency: int = settings.WORKER_CONCURRENCY,
    ):
        self.kind = kind
        self.processor = processor
        self.concurrency = concurrency
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._jobs: Dict[str, JobRecord] = {}
        self._completed: Deque[JobRecord] = deque()
        self._failed: Deque[JobRecord] = deque()
        self._workers: List[asyncio.Task] = []
        self._delayed: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def enqueue(self, job: SourceJob) -> str:
        """
        Returns:
            The id of the new job record

        Raises:
            JobEnqueueError: when the job does not belong to this queue
        """
        if job.job_kind != self.kind:
            raise JobEnqueueError(
                "Job kind does not match queue",
                context={"queue": self.kind.value, "job_kind": job.job_kind.value}
            )

        job_id = str(uuid.uuid4())
        self._jobs[job_id] = JobRecord(
            job_id=job_id,
            job=job,
            enqueued_at=datetime.now(timezone.utc),
        )
        await self._queue.put(job_id)
        logger.debug(f"Enqueued {job.name} as {job_id}")
        return job_id

    def get(self, job_id: str) -> Optional[JobRecord]:
        if job_id in self._jobs:
            return self._jobs[job_id]
        for record in list(self._completed) + list(self._failed):
            if record.job_id == job_id:
                return record
        return None

    def counts(self) -> Dict[str, int]:
        counts = {"waiting": 0, "active": 0, "delayed": 0}
        for record in self._jobs.values():
            counts[record.state] += 1
        counts["completed"] = len(self._completed)
        counts["failed"] = len(self._failed)
        return counts

    def start(self):
        if self._workers:
            return
        for index in range(self.concurrency):
            self._workers.append(
                asyncio.create_task(self._worker(), name=f"{self.kind.value}-worker-{index}")
            )
        logger.info(f"Started {self.concurrency} worker(s) for {self.kind.value}")

    async def stop(self):
        tasks = self._workers + list(self._delayed)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._delayed.clear()
        await self.processor.close()
        logger.info(f"Stopped workers for {self.kind.value}")

    async def _worker(self):
        while True:
            await self.process_next()

    async def process_next(self) -> JobRecord:
        """Wait for the next job and run one attempt of it."""
        job_id = await self._queue.get()
        try:
            record = self._jobs[job_id]
            await self._run(record)
            return record
        finally:
            self._queue.task_done()

    async def _run(self, record: JobRecord):
        record.state = "active"
        record.attempts += 1

        try:
            stats = await self.processor.process(record.job)
        except Exception as e:
            record.error = str(e)
            if isinstance(e, ETLException):
                logger.error(
                    f"Job {record.job.name} attempt {record.attempts} failed: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
            else:
                logger.exception(f"Job {record.job.name} attempt {record.attempts} crashed")
            self._retry_or_fail(record)
            return

        record.stats = stats
        if stats.status == ProcessingStatus.DEGRADED:
            record.error = "processing degraded"
            logger.warning(f"Job {record.job.name} attempt {record.attempts} degraded")
            self._retry_or_fail(record)
            return

        record.error = None
        self._finish(record, "completed")

    def _retry_or_fail(self, record: JobRecord):
        policy = record.job.retry_policy
        if record.attempts >= policy.max_attempts:
            logger.error(f"Job {record.job.name} failed after {record.attempts} attempt(s)")
            self._finish(record, "failed")
            return

        delay = policy.delay_for(record.attempts)
        record.state = "delayed"
        logger.info(f"Retrying {record.job.name} in {delay:.1f}s (attempt {record.attempts}/{policy.max_attempts})")

        task = asyncio.create_task(self._requeue_after(record.job_id, delay))
        self._delayed.add(task)
        task.add_done_callback(self._delayed.discard)

    async def _requeue_after(self, job_id: str, delay: float):
        await asyncio.sleep(delay)
        record = self._jobs.get(job_id)
        if record is not None:
            record.state = "waiting"
            await self._queue.put(job_id)

    def _finish(self, record: JobRecord, state: JobState):
        record.state = state
        record.finished_at = datetime.now(timezone.utc)
        self._jobs.pop(record.job_id, None)

        if state == "completed":
            history, keep = self._completed, record.job.removal_policy.keep_completed
        else:
            history, keep = self._failed, record.job.removal_policy.keep_failed
        history.append(record)
        while len(history) > keep:
            history.popleft()


class QueueRegistry:
    """One JobQueue per job kind"""

    def __init__(self, queues: Dict[JobKind, JobQueue]):
        self.queues = queues

    @classmethod
    def create(
        cls,
        processor_factory: Callable[[JobKind], SourceProcessor] = create_processor,
        kinds: Optional[List[JobKind]] = None,
    ) -> "QueueRegistry":
        return cls({kind: JobQueue(kind, processor_factory(kind)) for kind in (kinds or list(JobKind))})

    def get(self, kind: JobKind) -> JobQueue:
        if kind not in self.queues:
            raise JobEnqueueError("No queue registered for job kind", context={"job_kind": kind.value})
        return self.queues[kind]

    async def enqueue(self, job: SourceJob) -> str:
        return await self.get(job.job_kind).enqueue(job)

    def counts(self) -> Dict[str, Dict[str, Any]]:
        return {kind.value: queue.counts() for kind, queue in self.queues.items()}

    def start(self):
        for queue in self.queues.values():
            queue.start()

    async def stop(self):
        for queue in self.queues.values():
            await queue.stop()
