"""Traders router: ranked listing and per-trader downsampled series."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from backend.cache import CacheLayer
from backend.config import CACHE_TTL_SERIES, CACHE_TTL_TOP, TOP_TRADERS_LIMIT
from backend.dependencies import get_cache, get_datastore, get_okx_client, get_series_resolver
from backend.schemas import TopTraderItem, TopTradersResponse
from leadwatch.config import DEFAULT_RESOLUTION
from leadwatch.datastore import DataStore
from leadwatch.models import TraderSeries
from leadwatch.okx_client import OkxClient
from leadwatch.series import SeriesResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["traders"])


@router.get("/traders/top", response_model=TopTradersResponse)
async def get_top_traders(
    limit: int = Query(default=TOP_TRADERS_LIMIT, ge=1, le=200),
    okx_client: OkxClient = Depends(get_okx_client),
    datastore: DataStore = Depends(get_datastore),
    cache: CacheLayer = Depends(get_cache),
) -> TopTradersResponse:
    """Ranked lead traders, each flagged with its watch-list membership.

    The OKX listing is cached; the watched flag is read fresh every call.
    """
    top = await cache.get_or_fetch(
        f"top:{limit}",
        lambda: okx_client.list_top_traders(limit),
        ttl=CACHE_TTL_TOP,
    )
    watched = datastore.watched_set()
    return TopTradersResponse(
        top=[TopTraderItem(**row.model_dump(), watched=row.inst_id in watched) for row in top]
    )


@router.get("/traders/{inst_id}", response_model=TraderSeries)
async def get_trader_series(
    inst_id: str,
    interval: str = Query(default=DEFAULT_RESOLUTION),
    resolver: SeriesResolver = Depends(get_series_resolver),
    cache: CacheLayer = Depends(get_cache),
) -> TraderSeries:
    """Downsampled history for one trader at resolution *interval*."""
    cache_key = f"series:{inst_id}:{interval}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    result = resolver.resolve(inst_id, interval)
    cache.set(cache_key, result, ttl=CACHE_TTL_SERIES)
    return result
