"""Ports for persistence, handlers, and notifications."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job
from engagement_jobs.domain.predicates import Ordering, Predicate


class StoreAdapter(Protocol):
    """Relational store port shared by jobs and locks.

    Implementations raise `StorageError` for driver failures and
    `DuplicateKeyError` when an insert collides with an existing primary key.
    """

    async def insert(self, table: str, row: Mapping[str, Any]) -> str:
        """Insert one row and return its primary key."""

    async def update(
        self,
        table: str,
        predicate: Predicate,
        fields: Mapping[str, Any],
    ) -> int:
        """Update rows matching `predicate` and return the affected count."""

    async def select(
        self,
        table: str,
        predicate: Predicate,
        order: Ordering = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return copies of rows matching `predicate`."""

    async def delete(self, table: str, predicate: Predicate) -> int:
        """Delete rows matching `predicate` and return the affected count."""

    def now(self) -> datetime:
        """Return the store's notion of current UTC time."""


@runtime_checkable
class ClosableStoreAdapter(Protocol):
    """Store adapter that holds connections needing explicit shutdown."""

    async def close(self) -> None:
        """Release pooled connections."""


@runtime_checkable
class PeriodicTrigger(Protocol):
    """Background driver that invokes dispatcher ticks on a schedule."""

    async def start(self) -> None:
        """Begin periodic invocation."""

    async def stop(self) -> None:
        """Stop periodic invocation and wait for the loop to exit."""


class JobContext(Protocol):
    """Per-execution view handed to job handlers."""

    @property
    def job_id(self) -> str:
        """Return the running job id."""

    @property
    def job_type(self) -> str:
        """Return the running job type."""

    @property
    def payload(self) -> dict[str, Any]:
        """Return the job payload."""

    @property
    def attempt(self) -> int:
        """Return the 1-indexed attempt number being executed."""

    async def update_progress(self, percent: int, message: str | None = None) -> None:
        """Persist handler progress for status readers."""


class JobHandler(Protocol):
    """Async callable executing one job type."""

    async def __call__(self, context: JobContext) -> None:
        """Run the job; raise to signal failure."""


class Notifier(Protocol):
    """Fire-and-forget notification port."""

    async def notify_job_failed(self, job: Job, error: str) -> None:
        """Report that a job reached terminal failure."""

    async def notify_circuit_opened(self, status: CircuitBreakerStatus) -> None:
        """Report that a dependency circuit opened."""


@runtime_checkable
class ClosableNotifier(Protocol):
    """Notifier holding a broker connection that must be closed on shutdown."""

    def close(self) -> None:
        """Disconnect from the broker."""


__all__ = [
    "ClosableNotifier",
    "ClosableStoreAdapter",
    "JobContext",
    "JobHandler",
    "Notifier",
    "PeriodicTrigger",
    "StoreAdapter",
]
