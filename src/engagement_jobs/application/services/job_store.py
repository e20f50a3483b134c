"""Durable job queue on top of the store adapter."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from engagement_jobs.domain.errors import JobNotFoundError, JobValidationError
from engagement_jobs.domain.jobs import (
    ACTIVE_JOB_STATUSES,
    READY_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    Job,
    JobStats,
    JobStatus,
)
from engagement_jobs.domain.ports import StoreAdapter
from engagement_jobs.domain.predicates import (
    GreaterEqual,
    In,
    LessEqual,
    LessThan,
    SortDirection,
)

JOBS_TABLE = "jobs"
_DEFAULT_PRIORITY = 10
_DEFAULT_DEDUPE_WINDOW_SECONDS = 3600.0
_MAX_MESSAGE_LENGTH = 2000

logger = logging.getLogger(__name__)


class JobStore:
    """CRUD and claim operations over job rows."""

    def __init__(
        self,
        store: StoreAdapter,
        *,
        dedupe_window_seconds: float = _DEFAULT_DEDUPE_WINDOW_SECONDS,
    ) -> None:
        self._store = store
        self._dedupe_window_seconds = max(dedupe_window_seconds, 0.0)

    @property
    def store(self) -> StoreAdapter:
        """Return the underlying store adapter."""

        return self._store

    def now(self) -> datetime:
        """Return current store time."""

        return self._store.now()

    async def enqueue(
        self,
        job_type: str,
        payload: Mapping[str, Any] | None = None,
        priority: int = _DEFAULT_PRIORITY,
        delay: float = 0.0,
        *,
        dedupe: bool = False,
    ) -> str:
        """Persist a `queued` job and return its id.

        With `dedupe`, an active job of the same type and payload created within
        the dedupe window is reused instead of inserting a new row.
        """

        normalized_type = job_type.strip()
        if not normalized_type:
            raise JobValidationError("Job type cannot be empty.")
        if delay < 0:
            raise JobValidationError("Job delay cannot be negative.")
        job_payload = dict(payload or {})

        dedupe_key: str | None = None
        if dedupe:
            dedupe_key = self._dedupe_key(normalized_type, job_payload)
            existing = await self._find_active_duplicate(dedupe_key)
            if existing is not None:
                logger.info(
                    "Job of type '%s' already queued as %s; skipping duplicate.",
                    normalized_type,
                    existing.id,
                )
                return existing.id

        now = self._store.now()
        job_id = f"job_{uuid4().hex}"
        await self._store.insert(
            JOBS_TABLE,
            {
                "id": job_id,
                "type": normalized_type,
                "payload": job_payload,
                "priority": priority,
                "attempts": 0,
                "status": JobStatus.QUEUED.value,
                "progress": 0,
                "message": None,
                "dedupe_key": dedupe_key,
                "scheduled_at": now + timedelta(seconds=delay),
                "created_at": now,
                "updated_at": now,
                "started_at": None,
                "completed_at": None,
            },
        )
        logger.info(
            "Queued job %s of type '%s' (priority %s, delay %.0fs).",
            job_id,
            normalized_type,
            priority,
            delay,
        )
        return job_id

    async def get(self, job_id: str) -> Job | None:
        """Return one job or None."""

        rows = await self._store.select(JOBS_TABLE, {"id": job_id}, limit=1)
        if not rows:
            return None
        return self._to_job(rows[0])

    async def require(self, job_id: str) -> Job:
        """Return one job or raise `JobNotFoundError`."""

        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job '{job_id}' not found.")
        return job

    async def claim_ready(self, limit: int) -> list[Job]:
        """Claim up to `limit` due jobs, moving each to `processing`.

        Each transition is a compare-and-set on the previously read status so a
        row claimed concurrently by another dispatcher is skipped.
        """

        if limit <= 0:
            return []

        now = self._store.now()
        rows = await self._store.select(
            JOBS_TABLE,
            {
                "status": In(status.value for status in READY_JOB_STATUSES),
                "scheduled_at": LessEqual(now),
            },
            order=(("priority", SortDirection.ASC), ("scheduled_at", SortDirection.ASC)),
            limit=limit,
        )

        claimed: list[Job] = []
        for row in rows:
            fields = {
                "status": JobStatus.PROCESSING.value,
                "started_at": now,
                "updated_at": now,
            }
            affected = await self._store.update(
                JOBS_TABLE,
                {"id": row["id"], "status": row["status"], "attempts": row["attempts"]},
                fields,
            )
            if affected != 1:
                logger.debug("Job %s was claimed elsewhere; skipping.", row["id"])
                continue
            row.update(fields)
            claimed.append(self._to_job(row))
        return claimed

    async def release_claim(self, job: Job) -> bool:
        """Return a claimed job that never ran to the ready queue.

        The job goes back to `queued` (or `retrying` once it has attempts) only
        if the row is still exactly as `claim_ready` left it.
        """

        now = self._store.now()
        status = JobStatus.QUEUED if job.attempts == 0 else JobStatus.RETRYING
        affected = await self._store.update(
            JOBS_TABLE,
            {
                "id": job.id,
                "status": JobStatus.PROCESSING.value,
                "attempts": job.attempts,
                "started_at": job.started_at,
            },
            {"status": status.value, "started_at": None, "updated_at": now},
        )
        return affected == 1

    async def recover_stalled(self, started_before: datetime) -> int:
        """Requeue `processing` jobs whose run started before `started_before`.

        A recovered job is charged one attempt, so a job that keeps stalling
        still reaches its retry ceiling.
        """

        now = self._store.now()
        rows = await self._store.select(
            JOBS_TABLE,
            {
                "status": JobStatus.PROCESSING.value,
                "started_at": LessThan(started_before),
            },
        )

        recovered = 0
        for row in rows:
            affected = await self._store.update(
                JOBS_TABLE,
                {
                    "id": row["id"],
                    "status": JobStatus.PROCESSING.value,
                    "attempts": row["attempts"],
                    "started_at": row["started_at"],
                },
                {
                    "status": JobStatus.RETRYING.value,
                    "attempts": int(row["attempts"]) + 1,
                    "scheduled_at": now,
                    "started_at": None,
                    "updated_at": now,
                    "message": "Job stalled while processing; requeued for retry.",
                },
            )
            if affected != 1:
                continue
            recovered += 1
            logger.warning(
                "Recovered stalled job %s (%s) started at %s.",
                row["id"],
                row["type"],
                row["started_at"].isoformat(),
            )
        return recovered

    async def update_status(
        self,
        job_id: str,
        status: JobStatus | None = None,
        progress: int | None = None,
        message: str | None = None,
        *,
        attempts: int | None = None,
    ) -> None:
        """Apply a partial status update; raise `JobNotFoundError` for unknown ids."""

        now = self._store.now()
        fields: dict[str, Any] = {"updated_at": now}
        if status is not None:
            fields["status"] = status.value
            if status in TERMINAL_JOB_STATUSES:
                fields["completed_at"] = now
        if progress is not None:
            fields["progress"] = _clamp_progress(progress)
        if message is not None:
            fields["message"] = message[:_MAX_MESSAGE_LENGTH]
        if attempts is not None:
            fields["attempts"] = attempts

        affected = await self._store.update(JOBS_TABLE, {"id": job_id}, fields)
        if affected == 0:
            logger.debug("Status update for unknown job %s ignored.", job_id)
            raise JobNotFoundError(f"Job '{job_id}' not found.")

    async def mark_retry(
        self,
        job_id: str,
        attempts: int,
        delay: float,
        message: str | None = None,
    ) -> None:
        """Reschedule a job as `retrying` after `delay` seconds."""

        now = self._store.now()
        fields: dict[str, Any] = {
            "status": JobStatus.RETRYING.value,
            "attempts": attempts,
            "scheduled_at": now + timedelta(seconds=max(delay, 0.0)),
            "updated_at": now,
        }
        if message is not None:
            fields["message"] = message[:_MAX_MESSAGE_LENGTH]
        affected = await self._store.update(JOBS_TABLE, {"id": job_id}, fields)
        if affected == 0:
            raise JobNotFoundError(f"Job '{job_id}' not found.")

    async def cancel(self, job_id: str) -> bool:
        """Cancel a job that is still waiting to be claimed.

        Returns whether the row changed. Terminal jobs and jobs already running
        inside an executor are left untouched.
        """

        now = self._store.now()
        affected = await self._store.update(
            JOBS_TABLE,
            {
                "id": job_id,
                "status": In(status.value for status in READY_JOB_STATUSES),
            },
            {
                "status": JobStatus.CANCELLED.value,
                "message": "Cancelled",
                "updated_at": now,
                "completed_at": now,
            },
        )
        if affected:
            logger.info("Cancelled job %s.", job_id)
        return affected > 0

    async def stats(self, window: float) -> JobStats:
        """Count jobs created within the last `window` seconds by status."""

        since = self._store.now() - timedelta(seconds=max(window, 0.0))
        rows = await self._store.select(JOBS_TABLE, {"created_at": GreaterEqual(since)})
        counts = {status: 0 for status in JobStatus}
        for row in rows:
            counts[JobStatus(row["status"])] += 1
        return JobStats(window_seconds=window, counts=counts)

    async def purge_terminal(self, older_than: datetime) -> int:
        """Delete terminal jobs last updated before `older_than`."""

        deleted = await self._store.delete(
            JOBS_TABLE,
            {
                "status": In(status.value for status in TERMINAL_JOB_STATUSES),
                "updated_at": LessThan(older_than),
            },
        )
        if deleted:
            logger.info("Purged %s terminal jobs older than %s.", deleted, older_than.isoformat())
        return deleted

    async def _find_active_duplicate(self, dedupe_key: str) -> Job | None:
        since = self._store.now() - timedelta(seconds=self._dedupe_window_seconds)
        rows = await self._store.select(
            JOBS_TABLE,
            {
                "dedupe_key": dedupe_key,
                "status": In(status.value for status in ACTIVE_JOB_STATUSES),
                "created_at": GreaterEqual(since),
            },
            order=(("created_at", SortDirection.DESC),),
            limit=1,
        )
        if not rows:
            return None
        return self._to_job(rows[0])

    def _dedupe_key(self, job_type: str, payload: Mapping[str, Any]) -> str:
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(f"{job_type}:{canonical}".encode()).hexdigest()

    def _to_job(self, row: Mapping[str, Any]) -> Job:
        payload = row.get("payload")
        return Job(
            id=str(row["id"]),
            type=str(row["type"]),
            payload=dict(payload) if isinstance(payload, Mapping) else {},
            priority=int(row["priority"]),
            scheduled_at=row["scheduled_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            status=JobStatus(row["status"]),
            attempts=int(row["attempts"]),
            progress=int(row["progress"]),
            message=row.get("message"),
            dedupe_key=row.get("dedupe_key"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
        )


def _clamp_progress(progress: int) -> int:
    return max(0, min(100, int(progress)))


__all__ = ["JOBS_TABLE", "JobStore"]
