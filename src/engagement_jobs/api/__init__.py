"""HTTP API package."""

from engagement_jobs.api.router import api_router

__all__ = ["api_router"]
