from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from engagement_jobs.application.services import JobStore
from engagement_jobs.domain.errors import JobNotFoundError, JobValidationError
from engagement_jobs.domain.jobs import JobStatus
from engagement_jobs.infrastructure.stores import InMemoryStoreAdapter


class ManualClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def job_store(clock: ManualClock) -> JobStore:
    return JobStore(InMemoryStoreAdapter(clock=clock))


def test_enqueue_creates_queued_job(job_store: JobStore, clock: ManualClock) -> None:
    async def scenario():
        job_id = await job_store.enqueue("demo", {"x": 1}, priority=4, delay=30)
        return job_id, await job_store.require(job_id)

    job_id, job = asyncio.run(scenario())

    assert job_id.startswith("job_")
    assert job.status is JobStatus.QUEUED
    assert job.payload == {"x": 1}
    assert job.priority == 4
    assert job.attempts == 0
    assert job.progress == 0
    assert job.scheduled_at == clock.current + timedelta(seconds=30)


def test_enqueue_rejects_blank_type_and_negative_delay(job_store: JobStore) -> None:
    with pytest.raises(JobValidationError):
        asyncio.run(job_store.enqueue("   "))
    with pytest.raises(JobValidationError):
        asyncio.run(job_store.enqueue("demo", delay=-1))


def test_claim_ready_orders_by_priority(job_store: JobStore) -> None:
    async def scenario():
        ids = {}
        for priority in (5, 1, 10):
            ids[priority] = await job_store.enqueue("demo", {"p": priority}, priority=priority)
        claimed = await job_store.claim_ready(10)
        return ids, claimed

    ids, claimed = asyncio.run(scenario())

    assert [job.id for job in claimed] == [ids[1], ids[5], ids[10]]
    assert all(job.status is JobStatus.PROCESSING for job in claimed)
    assert all(job.started_at is not None for job in claimed)


def test_claim_ready_skips_future_and_claimed_jobs(
    job_store: JobStore, clock: ManualClock
) -> None:
    async def scenario():
        later = await job_store.enqueue("demo", delay=60)
        now = await job_store.enqueue("demo")
        first = await job_store.claim_ready(10)
        second = await job_store.claim_ready(10)
        clock.advance(61)
        third = await job_store.claim_ready(10)
        return later, now, first, second, third

    later, now, first, second, third = asyncio.run(scenario())

    assert [job.id for job in first] == [now]
    assert second == []
    assert [job.id for job in third] == [later]


def test_claim_ready_honors_limit(job_store: JobStore) -> None:
    async def scenario():
        for _ in range(4):
            await job_store.enqueue("demo")
        return await job_store.claim_ready(3), await job_store.claim_ready(0)

    claimed, none = asyncio.run(scenario())

    assert len(claimed) == 3
    assert none == []


def test_update_status_sets_completion_and_clamps_progress(job_store: JobStore) -> None:
    async def scenario():
        job_id = await job_store.enqueue("demo")
        await job_store.update_status(job_id, JobStatus.PROCESSING, progress=150)
        processing = await job_store.require(job_id)
        await job_store.update_status(job_id, JobStatus.COMPLETED, 100, "done", attempts=1)
        return processing, await job_store.require(job_id)

    processing, completed = asyncio.run(scenario())

    assert processing.progress == 100
    assert processing.completed_at is None
    assert completed.status is JobStatus.COMPLETED
    assert completed.message == "done"
    assert completed.attempts == 1
    assert completed.completed_at is not None


def test_update_status_for_unknown_job_raises(job_store: JobStore) -> None:
    with pytest.raises(JobNotFoundError):
        asyncio.run(job_store.update_status("job_missing", JobStatus.FAILED))


def test_mark_retry_reschedules_job(job_store: JobStore, clock: ManualClock) -> None:
    async def scenario():
        job_id = await job_store.enqueue("demo")
        await job_store.claim_ready(1)
        await job_store.mark_retry(job_id, attempts=1, delay=60, message="retrying")
        job = await job_store.require(job_id)
        immediately = await job_store.claim_ready(1)
        clock.advance(60)
        later = await job_store.claim_ready(1)
        return job, immediately, later

    job, immediately, later = asyncio.run(scenario())

    assert job.status is JobStatus.RETRYING
    assert job.attempts == 1
    assert job.message == "retrying"
    assert immediately == []
    assert [claimed.id for claimed in later] == [job.id]


def test_release_claim_returns_unstarted_job_to_queue(job_store: JobStore) -> None:
    async def scenario():
        fresh_id = await job_store.enqueue("demo", priority=1)
        retried_id = await job_store.enqueue("demo", priority=2)
        fresh, _ = await job_store.claim_ready(2)
        await job_store.mark_retry(retried_id, attempts=1, delay=0)
        [retried] = await job_store.claim_ready(2)
        first = await job_store.release_claim(fresh)
        second = await job_store.release_claim(retried)
        again = await job_store.release_claim(fresh)
        return (
            first,
            second,
            again,
            await job_store.require(fresh_id),
            await job_store.require(retried_id),
        )

    first, second, again, fresh, retried = asyncio.run(scenario())

    assert first is True
    assert second is True
    assert again is False
    assert fresh.status is JobStatus.QUEUED
    assert fresh.started_at is None
    assert retried.status is JobStatus.RETRYING
    assert retried.attempts == 1


def test_recover_stalled_requeues_old_processing_jobs(
    job_store: JobStore, clock: ManualClock
) -> None:
    async def scenario():
        stalled_id = await job_store.enqueue("demo", priority=1)
        await job_store.claim_ready(1)
        clock.advance(400)
        recent_id = await job_store.enqueue("demo", priority=2)
        await job_store.claim_ready(1)
        recovered = await job_store.recover_stalled(clock.current - timedelta(seconds=360))
        return (
            recovered,
            await job_store.require(stalled_id),
            await job_store.require(recent_id),
            await job_store.claim_ready(5),
        )

    recovered, stalled, recent, reclaimed = asyncio.run(scenario())

    assert recovered == 1
    assert stalled.status is JobStatus.RETRYING
    assert stalled.attempts == 1
    assert stalled.started_at is None
    assert stalled.message == "Job stalled while processing; requeued for retry."
    assert recent.status is JobStatus.PROCESSING
    assert [job.id for job in reclaimed] == [stalled.id]


def test_cancel_only_affects_waiting_jobs(job_store: JobStore) -> None:
    async def scenario():
        queued = await job_store.enqueue("demo")
        done = await job_store.enqueue("demo")
        await job_store.update_status(done, JobStatus.COMPLETED, 100)
        results = (
            await job_store.cancel(queued),
            await job_store.cancel(queued),
            await job_store.cancel(done),
            await job_store.cancel("job_missing"),
        )
        return results, await job_store.require(queued), await job_store.require(done)

    results, cancelled, completed = asyncio.run(scenario())

    assert results == (True, False, False, False)
    assert cancelled.status is JobStatus.CANCELLED
    assert completed.status is JobStatus.COMPLETED


def test_dedupe_reuses_active_job_within_window(
    job_store: JobStore, clock: ManualClock
) -> None:
    async def scenario():
        first = await job_store.enqueue("demo", {"b": 2, "a": 1}, dedupe=True)
        second = await job_store.enqueue("demo", {"a": 1, "b": 2}, dedupe=True)
        other = await job_store.enqueue("demo", {"a": 2}, dedupe=True)
        clock.advance(3601)
        after_window = await job_store.enqueue("demo", {"a": 1, "b": 2}, dedupe=True)
        return first, second, other, after_window

    first, second, other, after_window = asyncio.run(scenario())

    assert second == first
    assert other != first
    assert after_window != first


def test_stats_counts_recent_jobs(job_store: JobStore, clock: ManualClock) -> None:
    async def scenario():
        await job_store.enqueue("demo")
        clock.advance(7200)
        done = await job_store.enqueue("demo")
        await job_store.update_status(done, JobStatus.COMPLETED, 100)
        await job_store.enqueue("demo")
        return await job_store.stats(3600)

    stats = asyncio.run(scenario())

    assert stats.total == 2
    assert stats.count(JobStatus.COMPLETED) == 1
    assert stats.count(JobStatus.QUEUED) == 1


def test_purge_terminal_removes_only_old_terminal_jobs(
    job_store: JobStore, clock: ManualClock
) -> None:
    async def scenario():
        old_done = await job_store.enqueue("demo")
        await job_store.update_status(old_done, JobStatus.FAILED)
        old_queued = await job_store.enqueue("demo")
        clock.advance(10)
        new_done = await job_store.enqueue("demo")
        await job_store.update_status(new_done, JobStatus.COMPLETED)
        deleted = await job_store.purge_terminal(clock.current - timedelta(seconds=5))
        remaining = [await job_store.get(job_id) for job_id in (old_done, old_queued, new_done)]
        return deleted, remaining

    deleted, remaining = asyncio.run(scenario())

    assert deleted == 1
    assert remaining[0] is None
    assert remaining[1] is not None
    assert remaining[2] is not None
