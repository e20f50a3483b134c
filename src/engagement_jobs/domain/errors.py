"""Domain exceptions for job processing."""


class JobSystemError(Exception):
    """Base class for job-processing errors."""


class StorageError(JobSystemError):
    """Raised when the backing store is unavailable or inconsistent."""


class DuplicateKeyError(StorageError):
    """Raised when an insert collides with an existing primary key."""


class JobNotFoundError(JobSystemError):
    """Raised when a job id is unknown."""


class JobValidationError(JobSystemError):
    """Raised when an enqueue request or job payload is invalid."""


class HandlerMissingError(JobSystemError):
    """Raised when no handler is registered for a job type."""


class HandlerError(JobSystemError):
    """Raised when a job handler fails."""


class TimeoutExceededError(HandlerError):
    """Raised when a handler exceeds its soft timeout."""


class CircuitOpenError(JobSystemError):
    """Raised when a call is short-circuited by an open breaker."""

    def __init__(self, service_id: str, seconds_until_retry: float = 0.0) -> None:
        super().__init__(
            f"Circuit breaker is open for service '{service_id}'; "
            f"retry in {seconds_until_retry:.0f}s."
        )
        self.service_id = service_id
        self.seconds_until_retry = seconds_until_retry


__all__ = [
    "CircuitOpenError",
    "DuplicateKeyError",
    "HandlerError",
    "HandlerMissingError",
    "JobNotFoundError",
    "JobSystemError",
    "JobValidationError",
    "StorageError",
    "TimeoutExceededError",
]
