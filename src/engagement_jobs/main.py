"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from engagement_jobs import __version__
from engagement_jobs.api import api_router
from engagement_jobs.api.dependencies import get_job_runtime, get_settings


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Build the runtime at startup and run its trigger while serving."""

        runtime = get_job_runtime()
        await runtime.startup()
        try:
            yield
        finally:
            await runtime.shutdown()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run local development server."""

    settings = get_settings()
    uvicorn.run(
        "engagement_jobs.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
