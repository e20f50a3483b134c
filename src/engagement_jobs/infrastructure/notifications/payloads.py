"""JSON payloads shared by notification adapters."""

from __future__ import annotations

from datetime import UTC, datetime

from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def timestamp() -> str:
    return datetime.now(tz=UTC).isoformat()


def job_failed_payload(node_id: str, job: Job, error: str) -> dict[str, object]:
    return {
        "eventType": "job.failed",
        "timestamp": timestamp(),
        "nodeId": node_id,
        "jobId": job.id,
        "jobType": job.type,
        "attempts": job.attempts,
        "priority": job.priority,
        "error": error,
        "createdAt": _iso(job.created_at),
    }


def circuit_opened_payload(node_id: str, status: CircuitBreakerStatus) -> dict[str, object]:
    return {
        "eventType": "circuit.opened",
        "timestamp": timestamp(),
        "nodeId": node_id,
        "serviceId": status.service_id,
        "state": status.state.value,
        "failureCount": status.failure_count,
        "failureThreshold": status.failure_threshold,
        "lastFailureAt": _iso(status.last_failure_at),
        "nextAttemptAt": _iso(status.next_attempt_at),
    }


__all__ = ["circuit_opened_payload", "job_failed_payload", "timestamp"]
