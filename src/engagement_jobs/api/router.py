"""Top-level API router composition."""

from fastapi import APIRouter

from engagement_jobs.api.routes import health_router, jobs_router, operations_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(jobs_router)
api_router.include_router(operations_router)

__all__ = ["api_router"]
