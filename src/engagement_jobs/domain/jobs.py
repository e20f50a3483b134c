"""Job entities and lifecycle states."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class JobStatus(StrEnum):
    """Lifecycle status of one queued job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset(
    {
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }
)

# Statuses a dispatcher may claim.
READY_JOB_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RETRYING})

ACTIVE_JOB_STATUSES = frozenset(
    {
        JobStatus.QUEUED,
        JobStatus.PROCESSING,
        JobStatus.RETRYING,
    }
)


@dataclass(slots=True)
class Job:
    """Unit of deferred work tracked in the jobs table."""

    id: str
    type: str
    payload: dict[str, Any]
    priority: int
    scheduled_at: datetime
    created_at: datetime
    updated_at: datetime
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    progress: int = 0
    message: str | None = None
    dedupe_key: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """Return whether the job can never be claimed again."""

        return self.status in TERMINAL_JOB_STATUSES


@dataclass(slots=True, frozen=True)
class JobStats:
    """Job counts grouped by status inside one observation window."""

    window_seconds: float
    counts: dict[JobStatus, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        """Return the number of jobs in the window."""

        return sum(self.counts.values())

    def count(self, status: JobStatus) -> int:
        """Return the count for one status."""

        return self.counts.get(status, 0)


__all__ = [
    "ACTIVE_JOB_STATUSES",
    "Job",
    "JobStats",
    "JobStatus",
    "READY_JOB_STATUSES",
    "TERMINAL_JOB_STATUSES",
]
