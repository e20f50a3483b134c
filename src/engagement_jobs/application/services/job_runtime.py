"""Facade bundling the job components built once per process."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from engagement_jobs.application.services.circuit_breaker import CircuitBreaker
from engagement_jobs.application.services.dispatcher import Dispatcher
from engagement_jobs.application.services.distributed_lock import DistributedLock
from engagement_jobs.application.services.handler_registry import HandlerRegistry
from engagement_jobs.application.services.job_executor import JobExecutor
from engagement_jobs.application.services.job_store import JobStore
from engagement_jobs.application.services.status_tracker import StatusTracker
from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job, JobStats
from engagement_jobs.domain.locks import LockInfo
from engagement_jobs.domain.outcomes import TickReport
from engagement_jobs.domain.ports import (
    ClosableNotifier,
    ClosableStoreAdapter,
    JobHandler,
    Notifier,
    PeriodicTrigger,
)

_DEFAULT_RETENTION_SECONDS = 7 * 24 * 3600.0
_DEFAULT_STATS_WINDOW_SECONDS = 24 * 3600.0

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class MaintenanceResult:
    """Rows removed by one retention sweep."""

    purged_jobs: int
    expired_locks: int

    @property
    def total(self) -> int:
        return self.purged_jobs + self.expired_locks


class JobRuntime:
    """Single entry point for producers, the HTTP API, and the trigger."""

    def __init__(
        self,
        *,
        job_store: JobStore,
        lock: DistributedLock,
        registry: HandlerRegistry,
        circuit_breaker: CircuitBreaker,
        status_tracker: StatusTracker,
        executor: JobExecutor,
        dispatcher: Dispatcher,
        retention_seconds: float = _DEFAULT_RETENTION_SECONDS,
        stats_window_seconds: float = _DEFAULT_STATS_WINDOW_SECONDS,
        trigger: PeriodicTrigger | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.job_store = job_store
        self.lock = lock
        self.registry = registry
        self.circuit_breaker = circuit_breaker
        self.status_tracker = status_tracker
        self.executor = executor
        self.dispatcher = dispatcher
        self._retention_seconds = retention_seconds
        self._stats_window_seconds = stats_window_seconds
        self._trigger = trigger
        self._notifier = notifier

    @property
    def trigger(self) -> PeriodicTrigger | None:
        return self._trigger

    def attach_trigger(self, trigger: PeriodicTrigger | None) -> None:
        """Set the periodic trigger started by `startup`."""

        self._trigger = trigger

    async def startup(self) -> None:
        """Start the periodic trigger, if one is attached."""

        logger.info("Job handlers registered: %s", ", ".join(self.registry.job_types()) or "none")
        if self._trigger is not None:
            await self._trigger.start()

    async def shutdown(self) -> None:
        """Stop the trigger, then close notifier and store connections."""

        if self._trigger is not None:
            await self._trigger.stop()
        if isinstance(self._notifier, ClosableNotifier):
            self._notifier.close()
        store = self.job_store.store
        if isinstance(store, ClosableStoreAdapter):
            await store.close()

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self.registry.register(job_type, handler)

    async def enqueue(
        self,
        job_type: str,
        payload: Mapping[str, Any] | None = None,
        priority: int = 10,
        delay: float = 0.0,
        *,
        dedupe: bool = False,
    ) -> str:
        """Queue a job; unknown job types are accepted but logged."""

        if job_type not in self.registry:
            logger.warning("Queued job type '%s' has no registered handler yet.", job_type)
        return await self.job_store.enqueue(
            job_type,
            payload,
            priority,
            delay,
            dedupe=dedupe,
        )

    async def get_status(self, job_id: str) -> Job:
        """Return the job or raise `JobNotFoundError`."""

        return await self.status_tracker.require_status(job_id)

    async def cancel(self, job_id: str) -> bool:
        cancelled = await self.job_store.cancel(job_id)
        self.status_tracker.invalidate(job_id)
        return cancelled

    async def stats(self, window_seconds: float | None = None) -> JobStats:
        window = self._stats_window_seconds if window_seconds is None else window_seconds
        return await self.job_store.stats(window)

    async def run_tick(self) -> TickReport:
        """Run one dispatcher tick in the caller's task."""

        return await self.dispatcher.tick()

    async def run_maintenance(self) -> MaintenanceResult:
        """Purge terminal jobs past retention and drop expired lock rows."""

        cutoff = self.job_store.now() - timedelta(seconds=self._retention_seconds)
        purged = await self.job_store.purge_terminal(cutoff)
        expired = await self.lock.cleanup_expired()
        return MaintenanceResult(purged_jobs=purged, expired_locks=expired)

    async def sweep(self) -> int:
        """Retention sweep callback for periodic triggers."""

        result = await self.run_maintenance()
        return result.total

    def get_circuit_status(self, service_id: str) -> CircuitBreakerStatus:
        return self.circuit_breaker.get_status(service_id)

    def list_circuits(self) -> list[CircuitBreakerStatus]:
        return self.circuit_breaker.get_all_statuses()

    def reset_circuit(self, service_id: str) -> CircuitBreakerStatus:
        self.circuit_breaker.reset(service_id)
        return self.circuit_breaker.get_status(service_id)

    async def get_lock_info(self, name: str) -> LockInfo | None:
        return await self.lock.get_info(name)


__all__ = ["JobRuntime", "MaintenanceResult"]
