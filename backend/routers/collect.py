"""Collect router: manual trigger for one collection cycle."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from backend.cache import CacheLayer
from backend.dependencies import get_cache, get_collector
from leadwatch.collector import Collector
from leadwatch.errors import CycleFailedError, NotFoundError
from leadwatch.models import CycleResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["collect"])


@router.post("/collect", response_model=CycleResult)
async def trigger_collect(
    collector: Collector = Depends(get_collector),
    cache: CacheLayer = Depends(get_cache),
) -> CycleResult:
    """Run one collection cycle now and return its result record."""
    try:
        result = await collector.collect_once()
    except NotFoundError as exc:
        logger.error("Manual collection cycle aborted: %s", exc)
        raise CycleFailedError(f"Collection cycle failed: {exc}") from exc
    if result.status == "success":
        cache.invalidate_prefix("series:")
    return result
