"""Job producer and status routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from engagement_jobs.api.dependencies import get_job_runtime
from engagement_jobs.api.errors import raise_http_exception
from engagement_jobs.application.services import JobRuntime
from engagement_jobs.domain.monitoring_models import (
    CancelJobResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    JobStatsResponse,
    JobStatusResponse,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=EnqueueJobResponse, status_code=202)
async def enqueue_job(
    request: EnqueueJobRequest,
    runtime: JobRuntime = Depends(get_job_runtime),
) -> EnqueueJobResponse:
    """Queue a job for background execution."""

    try:
        job_id = await runtime.enqueue(
            request.type,
            request.payload,
            request.priority,
            request.delay_seconds,
            dedupe=request.dedupe,
        )
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    return EnqueueJobResponse(job_id=job_id)


@router.get("/stats", response_model=JobStatsResponse, status_code=200)
async def job_stats(
    window_seconds: float | None = Query(default=None, alias="windowSeconds", gt=0),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> JobStatsResponse:
    """Count recent jobs by status."""

    try:
        stats = await runtime.stats(window_seconds)
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    return JobStatsResponse.from_stats(stats)


@router.get("/{job_id}", response_model=JobStatusResponse, status_code=200)
async def get_job_status(
    job_id: str = Path(...),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> JobStatusResponse:
    """Return progress and status of one job."""

    try:
        job = await runtime.get_status(job_id)
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    return JobStatusResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=CancelJobResponse, status_code=200)
async def cancel_job(
    job_id: str = Path(...),
    runtime: JobRuntime = Depends(get_job_runtime),
) -> CancelJobResponse:
    """Cancel a job that has not been claimed yet."""

    try:
        await runtime.get_status(job_id)
        cancelled = await runtime.cancel(job_id)
    except Exception as exc:  # noqa: BLE001
        raise_http_exception(exc)
    return CancelJobResponse(job_id=job_id, cancelled=cancelled)


__all__ = ["router"]
