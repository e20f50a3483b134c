"""Operator routes for the dispatcher, circuits, and locks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path

from engagement_jobs.api.dependencies import get_job_runtime
from engagement_jobs.api.errors import raise_http_exception
from engagement_jobs.application.services import JobRuntime
from engagement_jobs.domain.monitoring_models import (
    CircuitListResponse,
    CircuitStatusResponse,
    LockInfoResponse,
    TickReportResponse,
)

router = APIRouter(tags=["operations"])


@router.post("/dispatcher/tick", response_model=TickReportResponse, status_code=200)
async def run_dispatcher_tick(
    runtime: JobRuntime = Depends(get_job_runtime),
) -> TickReportResponse:
    """Run one dispatcher tick now."""

    try:
        report = await runtime.run_tick()
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    return TickReportResponse.from_report(report)


@router.get("/circuits", response_model=CircuitListResponse, status_code=200)
async def list_circuits(
    runtime: JobRuntime = Depends(get_job_runtime),
) -> CircuitListResponse:
    """List circuits seen by this process."""

    return CircuitListResponse(
        circuits=[CircuitStatusResponse.from_status(item) for item in runtime.list_circuits()]
    )


@router.get("/circuits/{service_id}", response_model=CircuitStatusResponse, status_code=200)
async def get_circuit(
    service_id: str = Path(...),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> CircuitStatusResponse:
    """Return one circuit's state."""

    return CircuitStatusResponse.from_status(runtime.get_circuit_status(service_id))


@router.post(
    "/circuits/{service_id}/reset",
    response_model=CircuitStatusResponse,
    status_code=200,
)
async def reset_circuit(
    service_id: str = Path(...),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> CircuitStatusResponse:
    """Force a circuit back to closed."""

    return CircuitStatusResponse.from_status(runtime.reset_circuit(service_id))


@router.get("/locks/{name}", response_model=LockInfoResponse, status_code=200)
async def get_lock(
    name: str = Path(...),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> LockInfoResponse:
    """Return the current holder of a named lock."""

    try:
        info = await runtime.get_lock_info(name)
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Lock '{name}' is not held.")
    return LockInfoResponse.from_info(info)


__all__ = ["router"]
