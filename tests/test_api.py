from __future__ import annotations

from fastapi.testclient import TestClient

from engagement_jobs.api.dependencies import get_job_runtime, get_settings
from engagement_jobs.domain.ports import JobContext
from engagement_jobs.main import app


def _reset_singletons() -> None:
    get_job_runtime.cache_clear()
    get_settings.cache_clear()


async def _demo_handler(context: JobContext) -> None:
    await context.update_progress(50, "half")


def test_healthz() -> None:
    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_enqueue_tick_and_read_status() -> None:
    _reset_singletons()
    get_job_runtime().register_handler("demo", _demo_handler)

    with TestClient(app) as client:
        enqueue_response = client.post("/jobs", json={"type": "demo", "payload": {"n": 1}})
        assert enqueue_response.status_code == 202
        job_id = enqueue_response.json()["jobId"]

        queued = client.get(f"/jobs/{job_id}")
        assert queued.status_code == 200
        assert queued.json()["status"] == "queued"

        tick_response = client.post("/dispatcher/tick")
        status_response = client.get(f"/jobs/{job_id}")

    assert tick_response.status_code == 200
    tick = tick_response.json()
    assert tick["lockAcquired"] is True
    assert tick["completed"] == 1
    assert tick["outcomes"][0]["jobId"] == job_id
    body = status_response.json()
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert body["attempts"] == 1


def test_enqueue_with_dedupe_returns_existing_job() -> None:
    _reset_singletons()

    payload = {"type": "demo", "payload": {"post": 7}, "dedupe": True}
    with TestClient(app) as client:
        first = client.post("/jobs", json=payload)
        second = client.post("/jobs", json=payload)

    assert first.json()["jobId"] == second.json()["jobId"]


def test_enqueue_rejects_invalid_body() -> None:
    _reset_singletons()

    with TestClient(app) as client:
        missing_type = client.post("/jobs", json={"payload": {}})
        negative_delay = client.post("/jobs", json={"type": "demo", "delaySeconds": -5})
        blank_type = client.post("/jobs", json={"type": "   "})

    assert missing_type.status_code == 422
    assert negative_delay.status_code == 422
    assert blank_type.status_code == 400


def test_unknown_job_returns_404() -> None:
    _reset_singletons()

    with TestClient(app) as client:
        status_response = client.get("/jobs/job_missing")
        cancel_response = client.post("/jobs/job_missing/cancel")

    assert status_response.status_code == 404
    assert cancel_response.status_code == 404


def test_cancel_queued_job() -> None:
    _reset_singletons()

    with TestClient(app) as client:
        job_id = client.post("/jobs", json={"type": "demo", "delaySeconds": 600}).json()["jobId"]
        first = client.post(f"/jobs/{job_id}/cancel")
        second = client.post(f"/jobs/{job_id}/cancel")
        status_response = client.get(f"/jobs/{job_id}")

    assert first.json() == {"jobId": job_id, "cancelled": True}
    assert second.json() == {"jobId": job_id, "cancelled": False}
    assert status_response.json()["status"] == "cancelled"


def test_job_stats_counts_by_status() -> None:
    _reset_singletons()

    with TestClient(app) as client:
        client.post("/jobs", json={"type": "demo"})
        client.post("/jobs", json={"type": "demo", "priority": 1})
        response = client.get("/jobs/stats", params={"windowSeconds": 3600})

    assert response.status_code == 200
    body = response.json()
    assert body["windowSeconds"] == 3600
    assert body["total"] == 2
    assert body["counts"]["queued"] == 2


def test_circuit_and_lock_admin_routes() -> None:
    _reset_singletons()

    with TestClient(app) as client:
        circuits = client.get("/circuits")
        circuit = client.get("/circuits/generation_api")
        reset = client.post("/circuits/generation_api/reset")
        lock = client.get("/locks/dispatcher")

    assert circuits.status_code == 200
    assert circuits.json() == {"circuits": []}
    assert circuit.json()["state"] == "closed"
    assert circuit.json()["serviceId"] == "generation_api"
    assert reset.status_code == 200
    assert lock.status_code == 404
