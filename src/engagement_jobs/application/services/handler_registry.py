"""Registry mapping job types to async handlers."""

from __future__ import annotations

import inspect
import logging

from engagement_jobs.domain.errors import HandlerMissingError
from engagement_jobs.domain.ports import JobHandler

logger = logging.getLogger(__name__)


def _is_async_callable(handler: object) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


class HandlerRegistry:
    """Typed registry resolved by the executor at run time."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, job_type: str, handler: JobHandler) -> None:
        """Register `handler` for `job_type`, replacing any previous one."""

        normalized_type = job_type.strip()
        if not normalized_type:
            raise ValueError("Job type cannot be empty.")
        if not _is_async_callable(handler):
            raise TypeError(f"Handler for job type '{normalized_type}' must be an async callable.")
        if normalized_type in self._handlers:
            logger.warning("Replacing handler registered for job type '%s'.", normalized_type)
        self._handlers[normalized_type] = handler

    def get(self, job_type: str) -> JobHandler | None:
        return self._handlers.get(job_type)

    def require(self, job_type: str) -> JobHandler:
        """Return the handler or raise `HandlerMissingError`."""

        handler = self._handlers.get(job_type)
        if handler is None:
            raise HandlerMissingError(f"No handler registered for job type '{job_type}'.")
        return handler

    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers


__all__ = ["HandlerRegistry"]
