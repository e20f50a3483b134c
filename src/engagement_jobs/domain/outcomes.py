"""Result values produced by job execution and dispatcher ticks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from engagement_jobs.domain.jobs import JobStatus


class OutcomeKind(StrEnum):
    """Why one job execution ended the way it did."""

    COMPLETED = "completed"
    HANDLER_ERROR = "handler_error"
    CIRCUIT_OPEN = "circuit_open"
    HANDLER_MISSING = "handler_missing"
    INVALID_PAYLOAD = "invalid_payload"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class ExecutionOutcome:
    """Result of running one claimed job through the executor."""

    job_id: str
    job_type: str
    kind: OutcomeKind
    status: JobStatus
    attempts: int
    message: str | None = None
    retry_in_seconds: float | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether the job reached `completed`."""

        return self.kind is OutcomeKind.COMPLETED


@dataclass(slots=True, frozen=True)
class TickReport:
    """Summary of one dispatcher tick."""

    lock_acquired: bool
    claimed: int = 0
    outcomes: tuple[ExecutionOutcome, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def completed(self) -> int:
        """Return how many jobs completed in this tick."""

        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        """Return how many jobs reached terminal failure in this tick."""

        return sum(1 for outcome in self.outcomes if outcome.status is JobStatus.FAILED)

    @property
    def retried(self) -> int:
        """Return how many jobs were rescheduled in this tick."""

        return sum(1 for outcome in self.outcomes if outcome.status is JobStatus.RETRYING)


__all__ = ["ExecutionOutcome", "OutcomeKind", "TickReport"]
