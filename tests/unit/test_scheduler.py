import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock, Mock, patch
from core.exceptions import JobEnqueueError
from ingestion.scheduler import DAILY_SCHEDULE, SourcingScheduler, build_partitions
from models.base import JobKind


def test_partitions_one_per_department():
    jobs = build_partitions(JobKind.FAILING_COMPANIES, date(2024, 1, 14))

    assert len(jobs) == 95
    assert jobs[0].partition_key == "01"
    assert jobs[-1].partition_key == "95"
    assert all(job.since_date == date(2024, 1, 14) for job in jobs)


def test_energy_partitions_split_per_class():
    jobs = build_partitions(JobKind.ENERGY_DIAGNOSTICS, date(2024, 1, 14), departments=["75", "69"])

    assert len(jobs) == 4
    assert [(job.partition_key, job.extra_filters["energy_classes"]) for job in jobs] == [
        ("75", ["F"]), ("75", ["G"]), ("69", ["F"]), ("69", ["G"]),
    ]


def test_scraped_kinds_are_national():
    for kind in (JobKind.AUCTIONS, JobKind.LISTINGS):
        jobs = build_partitions(kind, date(2024, 1, 14))

        assert len(jobs) == 1
        assert jobs[0].partition_key == "all"


def make_registry(enqueue):
    registry = Mock()
    registry.enqueue = AsyncMock(side_effect=enqueue)
    return registry


@pytest.mark.asyncio
async def test_fan_out_enqueues_every_partition():
    registry = make_registry(lambda job: "job-id")
    scheduler = SourcingScheduler(registry)

    enqueued = await scheduler.fan_out(JobKind.FAILING_COMPANIES, since_date=date(2024, 1, 14))

    assert enqueued == 95
    assert registry.enqueue.await_count == 95


@pytest.mark.asyncio
async def test_fan_out_skips_failing_enqueues():
    def enqueue(job):
        if job.partition_key == "13":
            raise RuntimeError("queue unavailable")
        if job.partition_key == "33":
            raise JobEnqueueError("No queue registered for job kind")
        return "job-id"

    scheduler = SourcingScheduler(make_registry(enqueue))

    enqueued = await scheduler.fan_out(JobKind.FAILING_COMPANIES, since_date=date(2024, 1, 14))

    assert enqueued == 93


@pytest.mark.asyncio
async def test_fan_out_defaults_to_yesterday():
    registry = make_registry(lambda job: "job-id")
    scheduler = SourcingScheduler(registry)

    await scheduler.fan_out(JobKind.AUCTIONS)

    job = registry.enqueue.await_args.args[0]
    assert job.since_date == date.today() - timedelta(days=1)


@pytest.mark.asyncio
async def test_run_daily_never_raises():
    scheduler = SourcingScheduler(make_registry(lambda job: "job-id"))

    with patch.object(scheduler, "fan_out", AsyncMock(side_effect=RuntimeError("boom"))):
        await scheduler.run_daily(JobKind.LISTINGS)


def test_start_registers_daily_triggers():
    scheduler = SourcingScheduler(make_registry(lambda job: "job-id"))
    scheduler.scheduler = MagicMock()

    scheduler.start()

    assert scheduler.scheduler.add_job.call_count == len(DAILY_SCHEDULE)
    ids = {call.kwargs["id"] for call in scheduler.scheduler.add_job.call_args_list}
    assert ids == {f"daily_{kind.value}" for kind in JobKind}
    scheduler.scheduler.start.assert_called_once()

    scheduler.stop()
    scheduler.scheduler.shutdown.assert_called_once()
