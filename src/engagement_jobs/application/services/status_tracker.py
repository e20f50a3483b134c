"""Read path for job status with a short-lived in-process cache."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from engagement_jobs.application.services.job_store import JobStore
from engagement_jobs.domain.errors import JobNotFoundError
from engagement_jobs.domain.jobs import TERMINAL_JOB_STATUSES, Job, JobStatus

_DEFAULT_CACHE_TTL_SECONDS = 2.0
_MAX_CACHE_ENTRIES = 1024


@dataclass(slots=True)
class _CachedJob:
    job: Job
    expires_at: float


class StatusTracker:
    """Write-through status cache in front of `JobStore`."""

    def __init__(
        self,
        job_store: JobStore,
        *,
        cache_ttl_seconds: float = _DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._job_store = job_store
        self._cache_ttl_seconds = max(cache_ttl_seconds, 0.0)
        self._clock = clock
        self._cache: dict[str, _CachedJob] = {}

    async def get_status(self, job_id: str) -> Job | None:
        """Return the job, served from cache while the entry is fresh."""

        cached = self._cache.get(job_id)
        if cached is not None and cached.expires_at > self._clock():
            return cached.job

        job = await self._job_store.get(job_id)
        if job is None:
            self._cache.pop(job_id, None)
            return None
        self._remember(job)
        return job

    async def require_status(self, job_id: str) -> Job:
        job = await self.get_status(job_id)
        if job is None:
            raise JobNotFoundError(f"Job '{job_id}' not found.")
        return job

    async def update_status(
        self,
        job_id: str,
        status: JobStatus | None = None,
        progress: int | None = None,
        message: str | None = None,
        *,
        attempts: int | None = None,
    ) -> None:
        """Persist a status change and refresh any cached copy."""

        await self._job_store.update_status(
            job_id,
            status,
            progress,
            message,
            attempts=attempts,
        )

        cached = self._cache.get(job_id)
        if cached is None:
            return
        now = self._job_store.now()
        changes: dict[str, object] = {"updated_at": now}
        if status is not None:
            changes["status"] = status
            if status in TERMINAL_JOB_STATUSES:
                changes["completed_at"] = now
        if progress is not None:
            changes["progress"] = max(0, min(100, int(progress)))
        if message is not None:
            changes["message"] = message
        if attempts is not None:
            changes["attempts"] = attempts
        self._remember(replace(cached.job, **changes))  # type: ignore[arg-type]

    def invalidate(self, job_id: str) -> None:
        """Drop one cached entry."""

        self._cache.pop(job_id, None)

    def clear(self) -> None:
        self._cache.clear()

    def _remember(self, job: Job) -> None:
        if self._cache_ttl_seconds <= 0:
            return
        if len(self._cache) >= _MAX_CACHE_ENTRIES:
            now = self._clock()
            self._cache = {
                job_id: entry for job_id, entry in self._cache.items() if entry.expires_at > now
            }
        expires_at = self._clock() + self._cache_ttl_seconds
        self._cache[job.id] = _CachedJob(job=job, expires_at=expires_at)


__all__ = ["StatusTracker"]
