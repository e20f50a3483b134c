"""Built-in job handlers."""

from engagement_jobs.infrastructure.handlers.api_generation import (
    API_GENERATION_JOB_TYPE,
    ApiGenerationHandler,
)
from engagement_jobs.infrastructure.handlers.maintenance import (
    MAINTENANCE_CLEANUP_JOB_TYPE,
    MaintenanceCleanupHandler,
)

__all__ = [
    "API_GENERATION_JOB_TYPE",
    "ApiGenerationHandler",
    "MAINTENANCE_CLEANUP_JOB_TYPE",
    "MaintenanceCleanupHandler",
]
