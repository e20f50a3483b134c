"""Remote generation API adapter."""

from engagement_jobs.infrastructure.generation_api.client import (
    GenerationApiClient,
    GenerationApiError,
)

__all__ = ["GenerationApiClient", "GenerationApiError"]
