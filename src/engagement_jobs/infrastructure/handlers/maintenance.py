"""Job handler running the retention sweep on demand."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from engagement_jobs.application.services import MaintenanceResult
from engagement_jobs.domain.ports import JobContext

MAINTENANCE_CLEANUP_JOB_TYPE = "maintenance_cleanup"


class MaintenanceCleanupHandler:
    """Purge expired jobs and lock rows as a queued job."""

    def __init__(self, run_maintenance: Callable[[], Awaitable[MaintenanceResult]]) -> None:
        self._run_maintenance = run_maintenance

    async def __call__(self, context: JobContext) -> None:
        if context.payload.get("dry_run"):
            await context.update_progress(100, "Dry run; nothing removed")
            return

        await context.update_progress(20, "Purging expired jobs and locks")
        result = await self._run_maintenance()
        await context.update_progress(
            100,
            f"Removed {result.purged_jobs} jobs and {result.expired_locks} expired locks",
        )


__all__ = ["MAINTENANCE_CLEANUP_JOB_TYPE", "MaintenanceCleanupHandler"]
