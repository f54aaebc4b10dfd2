"""CodeAtlas REST API: FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from codeatlas.api.deps import (
    dispose_runtime,
    get_incremental_runner,
    get_negative_score_runner,
    get_settings,
    init_runtime,
)
from codeatlas.api.errors import register_error_handlers
from codeatlas.api.middleware.request_id import RequestIDMiddleware
from codeatlas.api.routers import repositories, webhooks
from codeatlas.core.logging import setup_logging
from codeatlas.scheduler import create_scheduler


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: build the runtime, recover crashed runs, start the loops."""
    factory = init_runtime()
    incremental_runner = get_incremental_runner()
    await incremental_runner.recover(factory)

    scheduler = create_scheduler(
        factory,
        incremental_runner=incremental_runner,
        negative_score_runner=get_negative_score_runner(),
        config=get_settings().scheduler,
    )
    await scheduler.start()
    yield
    await scheduler.stop()
    await dispose_runtime()


def create_app(*, lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="CodeAtlas",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan if lifespan else None,
    )

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(
        repositories.router, prefix="/api/v1/repositories", tags=["repositories"]
    )

    return app
