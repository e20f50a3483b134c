"""No-op notifier used when no delivery channel is configured."""

from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job
from engagement_jobs.domain.ports import Notifier


class NoopNotifier(Notifier):
    """Drop notifications silently."""

    async def notify_job_failed(self, job: Job, error: str) -> None:
        _ = (job, error)

    async def notify_circuit_opened(self, status: CircuitBreakerStatus) -> None:
        _ = status


__all__ = ["NoopNotifier"]
