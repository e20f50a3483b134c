"""Domain public API."""

from engagement_jobs.domain.circuits import (
    CircuitBreakerConfig,
    CircuitBreakerStatus,
    CircuitState,
)
from engagement_jobs.domain.errors import (
    CircuitOpenError,
    DuplicateKeyError,
    HandlerError,
    HandlerMissingError,
    JobNotFoundError,
    JobSystemError,
    JobValidationError,
    StorageError,
    TimeoutExceededError,
)
from engagement_jobs.domain.jobs import (
    ACTIVE_JOB_STATUSES,
    READY_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    Job,
    JobStats,
    JobStatus,
)
from engagement_jobs.domain.locks import LockInfo, LockRecord
from engagement_jobs.domain.outcomes import ExecutionOutcome, OutcomeKind, TickReport
from engagement_jobs.domain.ports import (
    ClosableNotifier,
    ClosableStoreAdapter,
    JobContext,
    JobHandler,
    Notifier,
    PeriodicTrigger,
    StoreAdapter,
)
from engagement_jobs.domain.retry_policy import (
    DEFAULT_RETRY_POLICIES,
    RetryPolicy,
    RetryPolicyClass,
    delay,
    should_retry,
)

__all__ = [
    "ACTIVE_JOB_STATUSES",
    "CircuitBreakerConfig",
    "CircuitBreakerStatus",
    "CircuitOpenError",
    "CircuitState",
    "ClosableNotifier",
    "ClosableStoreAdapter",
    "DEFAULT_RETRY_POLICIES",
    "DuplicateKeyError",
    "ExecutionOutcome",
    "HandlerError",
    "HandlerMissingError",
    "Job",
    "JobContext",
    "JobHandler",
    "JobNotFoundError",
    "JobStats",
    "JobStatus",
    "JobSystemError",
    "JobValidationError",
    "LockInfo",
    "LockRecord",
    "Notifier",
    "OutcomeKind",
    "PeriodicTrigger",
    "READY_JOB_STATUSES",
    "RetryPolicy",
    "RetryPolicyClass",
    "StorageError",
    "StoreAdapter",
    "TERMINAL_JOB_STATUSES",
    "TickReport",
    "TimeoutExceededError",
    "delay",
    "should_retry",
]
