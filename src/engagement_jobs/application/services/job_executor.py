"""Run one claimed job through its handler with timeout, retry, and breaker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace
from functools import partial
from typing import Any

from engagement_jobs.application.services.circuit_breaker import CircuitBreaker
from engagement_jobs.application.services.handler_registry import HandlerRegistry
from engagement_jobs.application.services.job_store import JobStore
from engagement_jobs.application.services.status_tracker import StatusTracker
from engagement_jobs.domain.errors import (
    CircuitOpenError,
    HandlerMissingError,
    JobNotFoundError,
    JobValidationError,
    TimeoutExceededError,
)
from engagement_jobs.domain.jobs import Job, JobStatus
from engagement_jobs.domain.outcomes import ExecutionOutcome, OutcomeKind
from engagement_jobs.domain.ports import JobHandler, Notifier
from engagement_jobs.domain.retry_policy import (
    DEFAULT_RETRY_POLICIES,
    RetryPolicy,
    RetryPolicyClass,
    delay,
    should_retry,
)

_DEFAULT_JOB_TIMEOUT_SECONDS = 300.0
_MAX_ERROR_LENGTH = 1000

logger = logging.getLogger(__name__)


class ExecutionContext:
    """Handler-facing context that writes progress through the status tracker."""

    def __init__(self, job: Job, status_tracker: StatusTracker, attempt: int) -> None:
        self._job = job
        self._status_tracker = status_tracker
        self._attempt = attempt
        self._progress = 0

    @property
    def job_id(self) -> str:
        return self._job.id

    @property
    def job_type(self) -> str:
        return self._job.type

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self._job.payload)

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def progress(self) -> int:
        """Return the last reported progress."""

        return self._progress

    async def update_progress(self, percent: int, message: str | None = None) -> None:
        """Record handler progress, clamped to 0-100."""

        self._progress = max(0, min(100, int(percent)))
        await self._status_tracker.update_status(
            self._job.id,
            progress=self._progress,
            message=message,
        )


class JobExecutor:
    """Drive one job from `processing` to completed, retrying, or failed.

    Job-level failures never escape `execute`; they become status transitions
    and an `ExecutionOutcome`. Store failures propagate to the caller.
    """

    def __init__(
        self,
        job_store: JobStore,
        registry: HandlerRegistry,
        status_tracker: StatusTracker,
        *,
        retry_policies: Mapping[RetryPolicyClass, RetryPolicy] | None = None,
        job_retry_classes: Mapping[str, RetryPolicyClass] | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        monitored_services: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
        job_timeout_seconds: float = _DEFAULT_JOB_TIMEOUT_SECONDS,
    ) -> None:
        self._job_store = job_store
        self._registry = registry
        self._status_tracker = status_tracker
        self._retry_policies = dict(retry_policies or DEFAULT_RETRY_POLICIES)
        self._job_retry_classes = dict(job_retry_classes or {})
        self._circuit_breaker = circuit_breaker
        self._monitored_services = dict(monitored_services or {})
        self._notifier = notifier
        self._job_timeout_seconds = max(job_timeout_seconds, 0.001)

    def policy_for(self, job_type: str) -> RetryPolicy:
        """Return the retry policy configured for `job_type`."""

        policy_class = self._job_retry_classes.get(job_type, RetryPolicyClass.DEFAULT)
        policy = self._retry_policies.get(policy_class)
        if policy is None:
            policy = self._retry_policies.get(
                RetryPolicyClass.DEFAULT,
                DEFAULT_RETRY_POLICIES[RetryPolicyClass.DEFAULT],
            )
        return policy

    async def execute(self, job: Job) -> ExecutionOutcome:
        """Run `job` once and persist the resulting transition."""

        attempt = job.attempts + 1
        policy = self.policy_for(job.type)

        try:
            await self._status_tracker.update_status(
                job.id,
                JobStatus.PROCESSING,
                0,
                "Starting job processing",
            )
        except JobNotFoundError:
            logger.warning("Job %s vanished before execution; skipping.", job.id)
            return ExecutionOutcome(
                job_id=job.id,
                job_type=job.type,
                kind=OutcomeKind.SKIPPED,
                status=job.status,
                attempts=job.attempts,
                message="Job no longer exists",
            )

        if job.attempts >= policy.max_attempts:
            return await self._fail(
                job,
                job.attempts,
                "Job failed after maximum retry attempts.",
                OutcomeKind.HANDLER_ERROR,
            )

        try:
            handler = self._registry.require(job.type)
        except HandlerMissingError as exc:
            error = str(exc)
            self._log_failure(job, attempt, error)
            return await self._fail(
                job,
                attempt,
                f"Job failed. Error: {error}",
                OutcomeKind.HANDLER_MISSING,
            )

        context = ExecutionContext(job, self._status_tracker, attempt)
        try:
            await self._invoke(job, handler, context)
        except CircuitOpenError as exc:
            return await self._handle_failure(
                job, attempt, policy, str(exc), OutcomeKind.CIRCUIT_OPEN
            )
        except TimeoutExceededError:
            return await self._handle_failure(
                job, attempt, policy, "timed out", OutcomeKind.TIMED_OUT
            )
        except JobValidationError as exc:
            error = str(exc)
            self._log_failure(job, attempt, error)
            return await self._fail(
                job,
                attempt,
                f"Job failed. Error: {error}",
                OutcomeKind.INVALID_PAYLOAD,
            )
        except Exception as exc:
            error = str(exc).strip() or type(exc).__name__
            return await self._handle_failure(
                job, attempt, policy, error, OutcomeKind.HANDLER_ERROR
            )

        message = "Job completed successfully"
        await self._status_tracker.update_status(
            job.id,
            JobStatus.COMPLETED,
            100,
            message,
            attempts=attempt,
        )
        logger.info("Job %s (%s) completed on attempt %s.", job.id, job.type, attempt)
        return ExecutionOutcome(
            job_id=job.id,
            job_type=job.type,
            kind=OutcomeKind.COMPLETED,
            status=JobStatus.COMPLETED,
            attempts=attempt,
            message=message,
        )

    async def _invoke(self, job: Job, handler: JobHandler, context: ExecutionContext) -> None:
        service_id = self._monitored_services.get(job.type)
        if service_id is None or self._circuit_breaker is None:
            await self._run_with_timeout(job, handler, context)
            return
        await self._circuit_breaker.execute(
            service_id,
            partial(self._run_with_timeout, job, handler, context),
        )

    async def _run_with_timeout(
        self,
        job: Job,
        handler: JobHandler,
        context: ExecutionContext,
    ) -> None:
        task = asyncio.create_task(handler(context), name=f"job-{job.id}")
        try:
            done, _ = await asyncio.wait({task}, timeout=self._job_timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            task.result()
            return

        # The handler is asked to stop but not awaited; the callback reports
        # whatever it eventually does.
        task.cancel()
        task.add_done_callback(partial(_log_abandoned_handler, job.id, job.type))
        raise TimeoutExceededError(
            f"Job {job.id} exceeded {self._job_timeout_seconds:.0f}s soft timeout."
        )

    async def _handle_failure(
        self,
        job: Job,
        attempt: int,
        policy: RetryPolicy,
        error: str,
        kind: OutcomeKind,
    ) -> ExecutionOutcome:
        error = error[:_MAX_ERROR_LENGTH]
        self._log_failure(job, attempt, error)

        if not should_retry(attempt, policy):
            return await self._fail(
                job,
                attempt,
                f"Job failed after maximum retry attempts. Error: {error}",
                kind,
            )

        retry_in = delay(attempt, policy)
        message = f"Job failed, retrying in {retry_in:.0f} seconds. Error: {error}"
        await self._job_store.mark_retry(job.id, attempt, retry_in, message)
        self._status_tracker.invalidate(job.id)
        return ExecutionOutcome(
            job_id=job.id,
            job_type=job.type,
            kind=kind,
            status=JobStatus.RETRYING,
            attempts=attempt,
            message=message,
            retry_in_seconds=retry_in,
        )

    async def _fail(
        self,
        job: Job,
        attempt: int,
        message: str,
        kind: OutcomeKind,
    ) -> ExecutionOutcome:
        await self._status_tracker.update_status(
            job.id,
            JobStatus.FAILED,
            message=message,
            attempts=attempt,
        )
        logger.error(
            "Job %s (%s) failed permanently after %s attempts.",
            job.id,
            job.type,
            attempt,
        )
        await self._notify_failed(job, attempt, message)
        return ExecutionOutcome(
            job_id=job.id,
            job_type=job.type,
            kind=kind,
            status=JobStatus.FAILED,
            attempts=attempt,
            message=message,
        )

    async def _notify_failed(self, job: Job, attempt: int, message: str) -> None:
        if self._notifier is None:
            return
        failed_job = replace(job, status=JobStatus.FAILED, attempts=attempt, message=message)
        try:
            await self._notifier.notify_job_failed(failed_job, message)
        except Exception:
            logger.exception("Failure notification for job %s could not be delivered.", job.id)

    def _log_failure(self, job: Job, attempt: int, error: str) -> None:
        logger.warning(
            "Job %s of type '%s' failed on attempt %s: %s",
            job.id,
            job.type,
            attempt,
            error,
            extra={
                "job_id": job.id,
                "job_type": job.type,
                "attempt": attempt,
                "error": error,
            },
        )


def _log_abandoned_handler(job_id: str, job_type: str, task: asyncio.Task[None]) -> None:
    if task.cancelled():
        logger.warning(
            "Timed-out handler for job %s (%s) stopped after cancellation.",
            job_id,
            job_type,
        )
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "Timed-out handler for job %s (%s) later raised: %s",
            job_id,
            job_type,
            exc,
        )
        return
    logger.warning(
        "Timed-out handler for job %s (%s) finished after being abandoned.",
        job_id,
        job_type,
    )


__all__ = ["ExecutionContext", "JobExecutor"]
