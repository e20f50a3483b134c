"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from engagement_jobs.application.services import JobRuntime
from engagement_jobs.bootstrap import build_job_runtime
from engagement_jobs.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_job_runtime() -> JobRuntime:
    """Return singleton runtime graph."""

    return build_job_runtime(get_settings())


__all__ = ["get_job_runtime", "get_settings"]
