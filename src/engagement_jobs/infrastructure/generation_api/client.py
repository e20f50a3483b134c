"""HTTP client for the remote content generation API."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, cast

import httpx


class GenerationApiError(RuntimeError):
    """Raised when generation API calls fail."""


class GenerationApiClient:
    """Wrapper around the generation API endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        site_url: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = self._normalize_base_url(base_url)
        if not api_key.strip():
            raise GenerationApiError("Generation API key cannot be empty.")
        self._api_key = api_key
        self._site_url = site_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def submit_posts(
        self,
        generation_id: str,
        posts: Sequence[Mapping[str, Any]],
        workflow: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call `/process-posts` to start generation for `posts`."""

        payload: dict[str, Any] = {
            "generation_id": generation_id,
            "api_key": self._api_key,
            "posts": [dict(post) for post in posts],
            "workflow": dict(workflow or {}),
        }
        if self._site_url is not None:
            payload["siteUrl"] = self._site_url
        return await self._post("/process-posts", payload)

    async def fetch_updates(self, generation_id: str) -> dict[str, Any]:
        """Call `/updates` for the progress of one generation."""

        return await self._post(
            "/updates",
            {"generation_id": generation_id, "api_key": self._api_key},
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        async_transport = cast(httpx.AsyncBaseTransport | None, self._transport)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=async_transport,
            ) as http_client:
                response = await http_client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise GenerationApiError(f"POST {url} failed: {exc}") from exc
        self._ensure_success(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise GenerationApiError(f"POST {url} returned invalid JSON.") from exc
        if not isinstance(body, dict):
            raise GenerationApiError(f"POST {url} returned unexpected payload type.")
        if body.get("success") is False:
            raise GenerationApiError(
                f"POST {url} rejected: {body.get('message') or body.get('error') or 'unknown'}"
            )
        return body

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = self._detail_from_response(response)
        raise GenerationApiError(
            f"{response.request.method} {response.request.url} failed: "
            f"{response.status_code} {message}"
        )

    def _detail_from_response(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            for key in ("message", "error", "detail"):
                detail = payload.get(key)
                if isinstance(detail, str):
                    return detail
        return str(payload)

    def _normalize_base_url(self, base_url: str) -> str:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise GenerationApiError("Generation API endpoint cannot be empty.")
        return normalized


__all__ = ["GenerationApiClient", "GenerationApiError"]
