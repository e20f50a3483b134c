"""Route modules public API."""

from engagement_jobs.api.routes.health import router as health_router
from engagement_jobs.api.routes.jobs import router as jobs_router
from engagement_jobs.api.routes.operations import router as operations_router

__all__ = ["health_router", "jobs_router", "operations_router"]
