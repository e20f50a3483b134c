"""Application services public API."""

from engagement_jobs.application.services.circuit_breaker import CircuitBreaker
from engagement_jobs.application.services.dispatcher import Dispatcher
from engagement_jobs.application.services.distributed_lock import DistributedLock
from engagement_jobs.application.services.handler_registry import HandlerRegistry
from engagement_jobs.application.services.job_executor import ExecutionContext, JobExecutor
from engagement_jobs.application.services.job_runtime import JobRuntime, MaintenanceResult
from engagement_jobs.application.services.job_store import JobStore
from engagement_jobs.application.services.status_tracker import StatusTracker

__all__ = [
    "CircuitBreaker",
    "Dispatcher",
    "DistributedLock",
    "ExecutionContext",
    "HandlerRegistry",
    "JobExecutor",
    "JobRuntime",
    "JobStore",
    "MaintenanceResult",
    "StatusTracker",
]
