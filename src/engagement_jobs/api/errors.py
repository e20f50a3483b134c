"""Map domain exceptions onto HTTP errors."""

from typing import NoReturn

from fastapi import HTTPException

from engagement_jobs.domain.errors import (
    CircuitOpenError,
    JobNotFoundError,
    JobValidationError,
    StorageError,
)


def raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, JobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, JobValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, CircuitOpenError | StorageError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected job processing error")


__all__ = ["raise_http_exception"]
