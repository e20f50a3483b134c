from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from engagement_jobs.application.services import JobStore, StatusTracker
from engagement_jobs.domain.errors import JobNotFoundError
from engagement_jobs.domain.jobs import JobStatus
from engagement_jobs.infrastructure.stores import InMemoryStoreAdapter


class ManualTimer:
    def __init__(self) -> None:
        self.current = 100.0

    def __call__(self) -> float:
        return self.current


def _store_clock() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_cached_status_served_until_ttl_expires() -> None:
    job_store = JobStore(InMemoryStoreAdapter(clock=_store_clock))
    timer = ManualTimer()
    tracker = StatusTracker(job_store, cache_ttl_seconds=2.0, clock=timer)

    async def scenario():
        job_id = await job_store.enqueue("demo")
        first = await tracker.get_status(job_id)
        # Written behind the tracker's back.
        await job_store.update_status(job_id, JobStatus.PROCESSING, 40)
        cached = await tracker.get_status(job_id)
        timer.current += 2.5
        fresh = await tracker.get_status(job_id)
        return first, cached, fresh

    first, cached, fresh = asyncio.run(scenario())

    assert first is not None and first.status is JobStatus.QUEUED
    assert cached is not None and cached.status is JobStatus.QUEUED
    assert fresh is not None and fresh.status is JobStatus.PROCESSING
    assert fresh.progress == 40


def test_update_status_writes_through_cache() -> None:
    job_store = JobStore(InMemoryStoreAdapter(clock=_store_clock))
    tracker = StatusTracker(job_store, clock=ManualTimer())

    async def scenario():
        job_id = await job_store.enqueue("demo")
        await tracker.get_status(job_id)
        await tracker.update_status(job_id, JobStatus.COMPLETED, 100, "done", attempts=1)
        return await tracker.get_status(job_id), await job_store.require(job_id)

    cached, stored = asyncio.run(scenario())

    assert cached is not None
    assert cached.status is JobStatus.COMPLETED
    assert cached.progress == 100
    assert cached.message == "done"
    assert cached.completed_at is not None
    assert stored.status is JobStatus.COMPLETED


def test_invalidate_forces_reload() -> None:
    job_store = JobStore(InMemoryStoreAdapter(clock=_store_clock))
    tracker = StatusTracker(job_store, clock=ManualTimer())

    async def scenario():
        job_id = await job_store.enqueue("demo")
        await tracker.get_status(job_id)
        await job_store.cancel(job_id)
        tracker.invalidate(job_id)
        return await tracker.get_status(job_id)

    job = asyncio.run(scenario())

    assert job is not None
    assert job.status is JobStatus.CANCELLED


def test_unknown_job_returns_none_or_raises() -> None:
    tracker = StatusTracker(JobStore(InMemoryStoreAdapter(clock=_store_clock)))

    assert asyncio.run(tracker.get_status("job_missing")) is None
    with pytest.raises(JobNotFoundError):
        asyncio.run(tracker.require_status("job_missing"))
    with pytest.raises(JobNotFoundError):
        asyncio.run(tracker.update_status("job_missing", JobStatus.FAILED))
