"""Health check router."""
from __future__ import annotations

import logging
import sqlite3

from fastapi import APIRouter, Depends

from backend.config import PUSHPLUS_TOKEN
from backend.dependencies import get_collector, get_datastore
from backend.schemas import HealthResponse
from leadwatch.collector import Collector
from leadwatch.datastore import DataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    datastore: DataStore = Depends(get_datastore),
    collector: Collector = Depends(get_collector),
) -> HealthResponse:
    """Return system health status."""
    db_ok = False
    watched_count = 0
    try:
        watched_count = len(datastore.list_watched_ids())
        db_ok = True
    except sqlite3.Error:
        logger.warning("Health check: database query failed", exc_info=True)

    return HealthResponse(
        status="ok" if db_ok else "degraded",
        db_connected=db_ok,
        watched_count=watched_count,
        pushplus_token_set=bool(PUSHPLUS_TOKEN),
        cycle_in_progress=collector.in_progress,
    )
