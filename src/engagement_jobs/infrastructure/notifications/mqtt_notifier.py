"""MQTT notifier publishing job failures and circuit events."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from engagement_jobs.domain.circuits import CircuitBreakerStatus
from engagement_jobs.domain.jobs import Job
from engagement_jobs.domain.ports import Notifier
from engagement_jobs.infrastructure.notifications.payloads import (
    circuit_opened_payload,
    job_failed_payload,
)


class MqttNotifier(Notifier):
    """Publish notifications to `<prefix>/<node>/jobs/...` and `.../circuits/...`."""

    def __init__(
        self,
        node_id: str,
        broker_host: str,
        broker_port: int = 1883,
        topic_prefix: str = "engagement/jobs",
        qos: int = 0,
        username: str | None = None,
        password: str | None = None,
    ) -> None:
        if not broker_host.strip():
            raise ValueError("broker_host cannot be empty.")
        if qos not in {0, 1, 2}:
            raise ValueError("qos must be one of 0, 1, 2.")

        self._node_id = node_id
        self._topic_prefix = topic_prefix.strip().strip("/")
        self._qos = qos

        import paho.mqtt.client as mqtt  # type: ignore[import-untyped]

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"engagement-jobs-{node_id}",
        )
        if username is not None:
            client.username_pw_set(username=username, password=password)
        self._connect_with_retry(
            client=client,
            broker_host=broker_host,
            broker_port=broker_port,
        )
        client.loop_start()
        self._client = client

    async def notify_job_failed(self, job: Job, error: str) -> None:
        topic = f"{self._topic_prefix}/{self._node_id}/jobs/{job.id}/failed"
        await self._publish(topic, job_failed_payload(self._node_id, job, error))

    async def notify_circuit_opened(self, status: CircuitBreakerStatus) -> None:
        topic = f"{self._topic_prefix}/{self._node_id}/circuits/{status.service_id}/opened"
        await self._publish(topic, circuit_opened_payload(self._node_id, status))

    def close(self) -> None:
        """Stop the network loop and disconnect."""

        self._client.loop_stop()
        self._client.disconnect()

    async def _publish(self, topic: str, payload: dict[str, object]) -> None:
        message = json.dumps(payload, separators=(",", ":"))
        await asyncio.to_thread(self._client.publish, topic, message, self._qos)

    def _connect_with_retry(
        self,
        client: Any,
        broker_host: str,
        broker_port: int,
        max_attempts: int = 20,
    ) -> None:
        """Connect to MQTT broker with bounded retry/backoff."""

        delay_seconds = 0.5
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                client.connect(host=broker_host, port=broker_port, keepalive=60)
                return
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if attempt == max_attempts:
                    break
                time.sleep(delay_seconds)
                delay_seconds = min(3.0, delay_seconds * 1.5)

        raise RuntimeError(
            f"Failed to connect to MQTT broker {broker_host}:{broker_port} "
            f"after {max_attempts} attempts."
        ) from last_error


__all__ = ["MqttNotifier"]
