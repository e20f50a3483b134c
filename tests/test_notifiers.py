from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest

from engagement_jobs.domain.circuits import CircuitBreakerStatus, CircuitState
from engagement_jobs.domain.jobs import Job, JobStatus
from engagement_jobs.infrastructure.notifications import (
    MqttNotifier,
    NoopNotifier,
    NotificationDeliveryError,
    WebhookNotifier,
)


def _failed_job() -> Job:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    return Job(
        id="job_1",
        type="api_generation",
        payload={"post_ids": [1]},
        priority=10,
        scheduled_at=now,
        created_at=now,
        updated_at=now,
        status=JobStatus.FAILED,
        attempts=5,
        progress=10,
        message="Job failed after maximum retry attempts. Error: boom",
    )


def test_webhook_posts_job_failure_event() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(204)

    notifier = WebhookNotifier(
        url="https://alerts.example.com/hook",
        node_id="jobs-1",
        transport=httpx.MockTransport(handler),
    )

    asyncio.run(notifier.notify_job_failed(_failed_job(), "boom"))

    body = captured["body"]
    assert captured["url"] == "https://alerts.example.com/hook"
    assert isinstance(body, dict)
    assert body["eventType"] == "job.failed"
    assert body["nodeId"] == "jobs-1"
    assert body["jobId"] == "job_1"
    assert body["attempts"] == 5
    assert body["error"] == "boom"


def test_webhook_posts_circuit_opened_event() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200)

    notifier = WebhookNotifier(
        url="https://alerts.example.com/hook",
        node_id="jobs-1",
        transport=httpx.MockTransport(handler),
    )
    status = CircuitBreakerStatus(
        service_id="generation_api",
        state=CircuitState.OPEN,
        failure_count=5,
        failure_threshold=5,
        last_failure_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        next_attempt_at=datetime(2026, 3, 1, 12, 1, tzinfo=UTC),
        seconds_until_retry=60.0,
        has_fallback=False,
    )

    asyncio.run(notifier.notify_circuit_opened(status))

    body = captured["body"]
    assert isinstance(body, dict)
    assert body["eventType"] == "circuit.opened"
    assert body["serviceId"] == "generation_api"
    assert body["state"] == "open"
    assert body["nextAttemptAt"] == "2026-03-01T12:01:00+00:00"


def test_webhook_raises_on_rejected_delivery() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="nope")

    notifier = WebhookNotifier(
        url="https://alerts.example.com/hook",
        node_id="jobs-1",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(NotificationDeliveryError, match="500 nope"):
        asyncio.run(notifier.notify_job_failed(_failed_job(), "boom"))


def test_noop_notifier_accepts_events() -> None:
    asyncio.run(NoopNotifier().notify_job_failed(_failed_job(), "boom"))


class FakeMqttClient:
    def __init__(self, **kwargs: object) -> None:
        self.options = kwargs
        self.credentials: tuple[object, object] | None = None
        self.connected_to: tuple[object, object] | None = None
        self.published: list[tuple[str, str, int]] = []
        self.calls: list[str] = []

    def username_pw_set(self, username: object, password: object = None) -> None:
        self.credentials = (username, password)

    def connect(self, host: str, port: int, keepalive: int) -> None:
        self.connected_to = (host, port)

    def loop_start(self) -> None:
        self.calls.append("loop_start")

    def loop_stop(self) -> None:
        self.calls.append("loop_stop")

    def disconnect(self) -> None:
        self.calls.append("disconnect")

    def publish(self, topic: str, payload: str, qos: int) -> None:
        self.published.append((topic, payload, qos))


def test_mqtt_publishes_job_and_circuit_events(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("paho.mqtt.client.Client", FakeMqttClient)
    notifier = MqttNotifier(
        node_id="jobs-1",
        broker_host="broker.local",
        broker_port=1884,
        qos=1,
        username="jobs",
        password="secret",
    )
    status = CircuitBreakerStatus(
        service_id="generation_api",
        state=CircuitState.OPEN,
        failure_count=5,
        failure_threshold=5,
        last_failure_at=None,
        next_attempt_at=None,
        seconds_until_retry=60.0,
        has_fallback=False,
    )

    async def scenario() -> None:
        await notifier.notify_job_failed(_failed_job(), "boom")
        await notifier.notify_circuit_opened(status)

    asyncio.run(scenario())
    notifier.close()

    client = notifier._client
    assert client.options["client_id"] == "engagement-jobs-jobs-1"
    assert client.credentials == ("jobs", "secret")
    assert client.connected_to == ("broker.local", 1884)
    topics = [topic for topic, _, _ in client.published]
    assert topics == [
        "engagement/jobs/jobs-1/jobs/job_1/failed",
        "engagement/jobs/jobs-1/circuits/generation_api/opened",
    ]
    job_event = json.loads(client.published[0][1])
    assert job_event["jobId"] == "job_1"
    assert job_event["error"] == "boom"
    assert {qos for _, _, qos in client.published} == {1}
    assert client.calls == ["loop_start", "loop_stop", "disconnect"]


def test_mqtt_rejects_invalid_qos() -> None:
    with pytest.raises(ValueError, match="qos"):
        MqttNotifier(node_id="jobs-1", broker_host="broker.local", qos=3)
