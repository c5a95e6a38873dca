"""OKX lead-watch FastAPI application."""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.cache import CacheLayer
from backend.config import ALLOWED_ORIGINS, COLLECT_INTERVAL_SECONDS, DB_PATH, PUSHPLUS_TOKEN
from backend.routers import collect, health, traders, watch
from leadwatch.datastore import DataStore
from leadwatch.errors import (
    CycleFailedError,
    CycleInProgressError,
    InvalidResolutionError,
    NoDataError,
    NotFoundError,
    OkxAPIError,
    PersistenceError,
    UpstreamBusinessError,
    ValidationError,
)
from leadwatch.main import build_client, build_collector
from leadwatch.scheduler import run_scheduler
from leadwatch.series import SeriesResolver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown resources."""
    # --- startup ---
    logger.info("Starting lead-watch API...")

    if not PUSHPLUS_TOKEN:
        logger.warning("LEADWATCH_PUSHPLUS_TOKEN is not set, alerts will only be logged.")

    okx_client = build_client()
    app.state.okx_client = okx_client

    datastore = DataStore(DB_PATH)
    app.state.datastore = datastore

    collector = build_collector(okx_client, datastore)
    app.state.collector = collector
    app.state.series_resolver = SeriesResolver(datastore)
    app.state.cache = CacheLayer()

    # Launch scheduler as background task (skip in test mode)
    if os.getenv("TESTING") != "1":
        app.state.scheduler_task = asyncio.create_task(
            run_scheduler(collector, COLLECT_INTERVAL_SECONDS)
        )

    logger.info("Lead-watch API ready.")
    yield

    # --- shutdown ---
    logger.info("Shutting down lead-watch API...")
    if hasattr(app.state, "scheduler_task"):
        app.state.scheduler_task.cancel()
        try:
            await app.state.scheduler_task
        except asyncio.CancelledError:
            pass
    await okx_client.close()
    datastore.close()
    logger.info("Lead-watch API stopped.")


app = FastAPI(
    title="OKX Lead-Watch API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(traders.router)
app.include_router(watch.router)
app.include_router(collect.router)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "code": "not_found"})


@app.exception_handler(NoDataError)
async def no_data_handler(request: Request, exc: NoDataError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "code": "no_data"})


@app.exception_handler(InvalidResolutionError)
async def invalid_resolution_handler(request: Request, exc: InvalidResolutionError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "code": "invalid_interval", "valid": exc.valid},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.error("Upstream payload rejected on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": f"Upstream data error: {exc}"})


@app.exception_handler(UpstreamBusinessError)
async def business_error_handler(request: Request, exc: UpstreamBusinessError):
    return JSONResponse(
        status_code=502,
        content={"detail": f"Upstream API error: code={exc.code!r}", "code": "upstream_business"},
    )


@app.exception_handler(OkxAPIError)
async def okx_error_handler(request: Request, exc: OkxAPIError):
    return JSONResponse(
        status_code=502,
        content={"detail": f"Upstream API error: {exc.detail}"},
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc), "code": "persistence"})


@app.exception_handler(CycleFailedError)
async def cycle_failed_handler(request: Request, exc: CycleFailedError):
    return JSONResponse(status_code=502, content={"detail": str(exc), "code": "cycle_failed"})


@app.exception_handler(CycleInProgressError)
async def cycle_in_progress_handler(request: Request, exc: CycleInProgressError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "code": "cycle_in_progress"},
    )


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint."""
    return {"name": "OKX Lead-Watch API", "version": "0.1.0"}
