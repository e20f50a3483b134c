"""Request and response models for the job management API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from engagement_jobs.domain.circuits import CircuitBreakerStatus, CircuitState
from engagement_jobs.domain.jobs import Job, JobStats, JobStatus
from engagement_jobs.domain.locks import LockInfo
from engagement_jobs.domain.outcomes import ExecutionOutcome, OutcomeKind, TickReport


class MonitoringModel(BaseModel):
    """Base model for management routes."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class EnqueueJobRequest(MonitoringModel):
    """Body of `POST /jobs`."""

    type: str = Field(min_length=1, max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: int = 10
    delay_seconds: float = Field(default=0.0, ge=0, alias="delaySeconds")
    dedupe: bool = False


class EnqueueJobResponse(MonitoringModel):
    """Identifier of a newly queued (or deduplicated) job."""

    job_id: str = Field(alias="jobId")


class JobStatusResponse(MonitoringModel):
    """Status view of one job."""

    job_id: str = Field(alias="jobId")
    type: str
    status: JobStatus
    progress: int
    message: str | None = None
    attempts: int
    priority: int
    scheduled_at: datetime = Field(alias="scheduledAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_job(cls, job: Job) -> JobStatusResponse:
        return cls(
            job_id=job.id,
            type=job.type,
            status=job.status,
            progress=job.progress,
            message=job.message,
            attempts=job.attempts,
            priority=job.priority,
            scheduled_at=job.scheduled_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )


class CancelJobResponse(MonitoringModel):
    """Result of `POST /jobs/{id}/cancel`."""

    job_id: str = Field(alias="jobId")
    cancelled: bool


class JobStatsResponse(MonitoringModel):
    """Counts by status for a recent window."""

    window_seconds: float = Field(alias="windowSeconds")
    total: int
    counts: dict[JobStatus, int]

    @classmethod
    def from_stats(cls, stats: JobStats) -> JobStatsResponse:
        return cls(
            window_seconds=stats.window_seconds,
            total=stats.total,
            counts={status: stats.count(status) for status in JobStatus},
        )


class ExecutionOutcomeResponse(MonitoringModel):
    """One job result inside a tick report."""

    job_id: str = Field(alias="jobId")
    type: str
    outcome: OutcomeKind
    status: JobStatus
    attempts: int
    message: str | None = None
    retry_in_seconds: float | None = Field(default=None, alias="retryInSeconds")

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> ExecutionOutcomeResponse:
        return cls(
            job_id=outcome.job_id,
            type=outcome.job_type,
            outcome=outcome.kind,
            status=outcome.status,
            attempts=outcome.attempts,
            message=outcome.message,
            retry_in_seconds=outcome.retry_in_seconds,
        )


class TickReportResponse(MonitoringModel):
    """Result of a manually triggered dispatcher tick."""

    lock_acquired: bool = Field(alias="lockAcquired")
    claimed: int
    completed: int
    retried: int
    failed: int
    error: str | None = None
    outcomes: list[ExecutionOutcomeResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: TickReport) -> TickReportResponse:
        return cls(
            lock_acquired=report.lock_acquired,
            claimed=report.claimed,
            completed=report.completed,
            retried=report.retried,
            failed=report.failed,
            error=report.error,
            outcomes=[ExecutionOutcomeResponse.from_outcome(item) for item in report.outcomes],
        )


class CircuitStatusResponse(MonitoringModel):
    """Administrative view of one circuit breaker."""

    service_id: str = Field(alias="serviceId")
    state: CircuitState
    failure_count: int = Field(alias="failureCount")
    failure_threshold: int = Field(alias="failureThreshold")
    last_failure_at: datetime | None = Field(default=None, alias="lastFailureAt")
    next_attempt_at: datetime | None = Field(default=None, alias="nextAttemptAt")
    seconds_until_retry: float = Field(alias="secondsUntilRetry")
    has_fallback: bool = Field(alias="hasFallback")

    @classmethod
    def from_status(cls, status: CircuitBreakerStatus) -> CircuitStatusResponse:
        return cls(
            service_id=status.service_id,
            state=status.state,
            failure_count=status.failure_count,
            failure_threshold=status.failure_threshold,
            last_failure_at=status.last_failure_at,
            next_attempt_at=status.next_attempt_at,
            seconds_until_retry=status.seconds_until_retry,
            has_fallback=status.has_fallback,
        )


class CircuitListResponse(MonitoringModel):
    """All circuits known to this process."""

    circuits: list[CircuitStatusResponse]


class LockInfoResponse(MonitoringModel):
    """Administrative view of one distributed lock."""

    key: str
    host: str | None = None
    process_id: int | None = Field(default=None, alias="processId")
    acquired_at: datetime = Field(alias="acquiredAt")
    expires_at: datetime = Field(alias="expiresAt")
    is_expired: bool = Field(alias="isExpired")
    remaining_seconds: float = Field(alias="remainingSeconds")

    @classmethod
    def from_info(cls, info: LockInfo) -> LockInfoResponse:
        return cls(
            key=info.key,
            host=info.host,
            process_id=info.process_id,
            acquired_at=info.acquired_at,
            expires_at=info.expires_at,
            is_expired=info.is_expired,
            remaining_seconds=info.remaining_seconds,
        )


__all__ = [
    "CancelJobResponse",
    "CircuitListResponse",
    "CircuitStatusResponse",
    "EnqueueJobRequest",
    "EnqueueJobResponse",
    "ExecutionOutcomeResponse",
    "JobStatsResponse",
    "JobStatusResponse",
    "LockInfoResponse",
    "TickReportResponse",
]
