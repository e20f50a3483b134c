"""HTTP webhook notifier."""

from __future__ import annotations

from typing import cast

import httpx

from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job
from engagement_jobs.domain.ports import Notifier
from engagement_jobs.infrastructure.notifications.payloads import (
    circuit_opened_payload,
    job_failed_payload,
)


class NotificationDeliveryError(RuntimeError):
    """Raised when a webhook cannot be delivered."""


class WebhookNotifier(Notifier):
    """POST failure and circuit events as JSON to one webhook URL."""

    def __init__(
        self,
        url: str,
        node_id: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized = url.strip()
        if not normalized:
            raise ValueError("Webhook URL cannot be empty.")
        self._url = normalized
        self._node_id = node_id
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify_job_failed(self, job: Job, error: str) -> None:
        await self._post(job_failed_payload(self._node_id, job, error))

    async def notify_circuit_opened(self, status: CircuitBreakerStatus) -> None:
        await self._post(circuit_opened_payload(self._node_id, status))

    async def _post(self, payload: dict[str, object]) -> None:
        async_transport = cast(httpx.AsyncBaseTransport | None, self._transport)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=async_transport,
            ) as http_client:
                response = await http_client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(f"POST {self._url} failed: {exc}") from exc
        if not response.is_success:
            raise NotificationDeliveryError(
                f"POST {self._url} failed: {response.status_code} {response.text.strip()}"
            )


__all__ = ["NotificationDeliveryError", "WebhookNotifier"]
