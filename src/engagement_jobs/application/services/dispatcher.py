"""Lock-guarded dispatcher tick that claims and runs a bounded job batch."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import timedelta

from engagement_jobs.application.services.distributed_lock import DistributedLock
from engagement_jobs.application.services.job_executor import JobExecutor
from engagement_jobs.application.services.job_store import JobStore
from engagement_jobs.domain.errors import StorageError
from engagement_jobs.domain.jobs import Job
from engagement_jobs.domain.outcomes import ExecutionOutcome, TickReport

_DEFAULT_LOCK_NAME = "dispatcher"
_DEFAULT_LOCK_TTL_SECONDS = 300.0
_DEFAULT_LOCK_ACQUIRE_RETRIES = 3
_DEFAULT_MAX_CONCURRENT_JOBS = 3
_DEFAULT_STALLED_AFTER_SECONDS = 360.0

logger = logging.getLogger(__name__)


class Dispatcher:
    """Run one scheduling pass per `tick` call.

    Only the holder of the dispatcher lock claims jobs. Claimed jobs run in
    priority order, sequentially unless a worker pool larger than one is
    configured. The lock is renewed by a heartbeat while the batch runs and
    again before each job starts; once it is lost no further job starts.
    Claimed jobs that never started go back to the ready queue, and jobs left
    in `processing` by an earlier crashed tick are requeued at the start of the
    next one. Job-level failures are contained by the executor; store failures
    end the tick early and are reported in the returned report.
    """

    def __init__(
        self,
        job_store: JobStore,
        lock: DistributedLock,
        executor: JobExecutor,
        *,
        lock_name: str = _DEFAULT_LOCK_NAME,
        lock_ttl_seconds: float = _DEFAULT_LOCK_TTL_SECONDS,
        lock_acquire_retries: int = _DEFAULT_LOCK_ACQUIRE_RETRIES,
        lock_renew_interval_seconds: float | None = None,
        max_concurrent_jobs: int = _DEFAULT_MAX_CONCURRENT_JOBS,
        worker_pool_size: int = 1,
        stalled_after_seconds: float = _DEFAULT_STALLED_AFTER_SECONDS,
    ) -> None:
        self._job_store = job_store
        self._lock = lock
        self._executor = executor
        self._lock_name = lock_name
        self._lock_ttl_seconds = max(lock_ttl_seconds, 1.0)
        self._lock_acquire_retries = max(lock_acquire_retries, 1)
        if lock_renew_interval_seconds is None:
            lock_renew_interval_seconds = self._lock_ttl_seconds / 3
        self._lock_renew_interval_seconds = max(lock_renew_interval_seconds, 0.001)
        self._max_concurrent_jobs = max(max_concurrent_jobs, 1)
        self._worker_pool_size = max(worker_pool_size, 1)
        self._stalled_after_seconds = max(stalled_after_seconds, 0.0)

    @property
    def lock_name(self) -> str:
        return self._lock_name

    async def tick(self) -> TickReport:
        """Acquire the lock, run one batch, and always release the lock."""

        token = DistributedLock.new_token()
        try:
            acquired = await self._lock.acquire(
                self._lock_name,
                token,
                self._lock_ttl_seconds,
                max_retries=self._lock_acquire_retries,
            )
        except StorageError as exc:
            logger.exception("Dispatcher tick aborted: could not reach lock store.")
            return TickReport(lock_acquired=False, error=str(exc))

        if not acquired:
            await self._log_lock_holder()
            return TickReport(lock_acquired=False)

        outcomes: list[ExecutionOutcome] = []
        claimed = 0
        lock_lost = asyncio.Event()
        heartbeat = asyncio.create_task(
            self._keep_lock_alive(token, lock_lost),
            name="dispatcher-lock-heartbeat",
        )
        try:
            await self._recover_stalled()
            jobs = await self._job_store.claim_ready(self._max_concurrent_jobs)
            claimed = len(jobs)
            if jobs:
                logger.info("Dispatcher claimed %s jobs.", claimed)
                await self._run_batch(jobs, token, lock_lost, outcomes)
        except StorageError as exc:
            logger.exception("Dispatcher tick aborted by storage failure.")
            return TickReport(
                lock_acquired=True,
                claimed=claimed,
                outcomes=tuple(outcomes),
                error=str(exc),
            )
        finally:
            heartbeat.cancel()
            with suppress(asyncio.CancelledError):
                await heartbeat
            if not lock_lost.is_set():
                await self._release(token)

        return TickReport(lock_acquired=True, claimed=claimed, outcomes=tuple(outcomes))

    async def _run_batch(
        self,
        jobs: list[Job],
        token: str,
        lock_lost: asyncio.Event,
        outcomes: list[ExecutionOutcome],
    ) -> None:
        started: set[str] = set()
        try:
            if self._worker_pool_size == 1 or len(jobs) == 1:
                for job in jobs:
                    if not await self._may_start(token, lock_lost):
                        return
                    started.add(job.id)
                    outcome = await self._execute_contained(job)
                    if outcome is not None:
                        outcomes.append(outcome)
                return

            await self._run_pool(jobs, token, lock_lost, started, outcomes)
        finally:
            await self._release_unstarted([job for job in jobs if job.id not in started])

    async def _run_pool(
        self,
        jobs: list[Job],
        token: str,
        lock_lost: asyncio.Event,
        started: set[str],
        outcomes: list[ExecutionOutcome],
    ) -> None:
        slots = asyncio.Semaphore(min(self._worker_pool_size, len(jobs)))

        async def run_one(job: Job) -> ExecutionOutcome | None:
            async with slots:
                if not await self._may_start(token, lock_lost):
                    return None
                started.add(job.id)
                return await self._execute_contained(job)

        results = await asyncio.gather(
            *(run_one(job) for job in jobs),
            return_exceptions=True,
        )
        storage_error: StorageError | None = None
        for result in results:
            if isinstance(result, StorageError):
                storage_error = storage_error or result
            elif isinstance(result, BaseException):
                raise result
            elif result is not None:
                outcomes.append(result)
        if storage_error is not None:
            raise storage_error

    async def _execute_contained(self, job: Job) -> ExecutionOutcome | None:
        try:
            return await self._executor.execute(job)
        except StorageError:
            raise
        except Exception:
            logger.exception("Unexpected error while executing job %s (%s).", job.id, job.type)
            return None

    async def _may_start(self, token: str, lock_lost: asyncio.Event) -> bool:
        if lock_lost.is_set():
            return False
        if await self._lock.renew(self._lock_name, token, self._lock_ttl_seconds):
            return True
        lock_lost.set()
        logger.warning(
            "Dispatcher lock '%s' lost mid-batch; remaining jobs go back to the queue.",
            self._lock_name,
        )
        return False

    async def _keep_lock_alive(self, token: str, lock_lost: asyncio.Event) -> None:
        while True:
            await asyncio.sleep(self._lock_renew_interval_seconds)
            try:
                renewed = await self._lock.renew(self._lock_name, token, self._lock_ttl_seconds)
            except StorageError:
                logger.warning("Could not renew dispatcher lock '%s'; retrying.", self._lock_name)
                continue
            if not renewed:
                lock_lost.set()
                logger.warning(
                    "Dispatcher lock '%s' expired while the batch was running.",
                    self._lock_name,
                )
                return

    async def _recover_stalled(self) -> None:
        cutoff = self._job_store.now() - timedelta(seconds=self._stalled_after_seconds)
        recovered = await self._job_store.recover_stalled(cutoff)
        if recovered:
            logger.info("Requeued %s stalled jobs.", recovered)

    async def _release_unstarted(self, jobs: list[Job]) -> None:
        released = 0
        for job in jobs:
            try:
                if await self._job_store.release_claim(job):
                    released += 1
            except StorageError:
                logger.exception(
                    "Could not requeue unstarted job %s; stalled-job recovery will pick it up.",
                    job.id,
                )
        if released:
            logger.info("Returned %s unstarted jobs to the queue.", released)

    async def _release(self, token: str) -> None:
        try:
            await self._lock.release(self._lock_name, token)
        except StorageError:
            logger.exception(
                "Failed to release dispatcher lock '%s'; it expires in %.0fs.",
                self._lock_name,
                self._lock_ttl_seconds,
            )

    async def _log_lock_holder(self) -> None:
        try:
            info = await self._lock.get_info(self._lock_name)
        except StorageError:
            return
        if info is None:
            logger.debug("Dispatcher lock '%s' contended; skipping tick.", self._lock_name)
            return
        logger.info(
            "Dispatcher lock '%s' held by %s (pid %s) for another %.0fs; skipping tick.",
            self._lock_name,
            info.host or "unknown host",
            info.process_id,
            info.remaining_seconds,
        )


__all__ = ["Dispatcher"]
