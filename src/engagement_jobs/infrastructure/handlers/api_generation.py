"""Job handler submitting posts to the remote generation API."""

from __future__ import annotations

import logging
from typing import Any

from engagement_jobs.domain.errors import JobValidationError
from engagement_jobs.domain.ports import JobContext
from engagement_jobs.infrastructure.generation_api import GenerationApiClient

API_GENERATION_JOB_TYPE = "api_generation"

logger = logging.getLogger(__name__)


class ApiGenerationHandler:
    """Send each post in `post_ids` for generation, reporting progress 10-100."""

    def __init__(self, client: GenerationApiClient) -> None:
        self._client = client

    async def __call__(self, context: JobContext) -> None:
        payload = context.payload
        post_ids = self._post_ids(payload)
        posts_by_id = self._posts_by_id(payload)
        workflow = payload.get("workflow")
        if workflow is not None and not isinstance(workflow, dict):
            raise JobValidationError("workflow must be an object when provided.")

        await context.update_progress(10, "Preparing data for generation")

        total = len(post_ids)
        for processed, post_id in enumerate(post_ids, start=1):
            post = posts_by_id.get(str(post_id), {"id": post_id})
            await self._client.submit_posts(
                generation_id=f"{context.job_id}-{post_id}",
                posts=[post],
                workflow=workflow,
            )
            progress = int(processed / total * 90) + 10
            await context.update_progress(progress, f"Processed {processed}/{total} posts")

        logger.info("Submitted %s posts for generation in job %s.", total, context.job_id)

    def _post_ids(self, payload: dict[str, Any]) -> list[Any]:
        post_ids = payload.get("post_ids")
        if not isinstance(post_ids, list) or not post_ids:
            raise JobValidationError("post_ids required for api_generation job")
        for post_id in post_ids:
            if isinstance(post_id, bool) or not isinstance(post_id, int | str):
                raise JobValidationError(f"Invalid post id {post_id!r}.")
        return post_ids

    def _posts_by_id(self, payload: dict[str, Any]) -> dict[str, dict[str, Any]]:
        posts = payload.get("posts")
        if not isinstance(posts, list):
            return {}
        return {
            str(post["id"]): post
            for post in posts
            if isinstance(post, dict) and post.get("id") is not None
        }


__all__ = ["API_GENERATION_JOB_TYPE", "ApiGenerationHandler"]
