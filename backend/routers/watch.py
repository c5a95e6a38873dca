"""Watch-list router: list watched traders and toggle membership."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from backend.cache import CacheLayer
from backend.dependencies import get_cache, get_datastore, get_okx_client
from backend.schemas import ToggleRequest, ToggleResponse, WatchListResponse
from leadwatch.datastore import DataStore
from leadwatch.okx_client import OkxClient
from leadwatch.watchlist import toggle_watch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["watch"])


@router.get("/watch", response_model=WatchListResponse)
async def list_watched(
    datastore: DataStore = Depends(get_datastore),
) -> WatchListResponse:
    """Every watched trader with its info and latest metric sample."""
    return WatchListResponse(traders=datastore.list_watched_overview())


@router.post("/watch/toggle", response_model=ToggleResponse)
async def toggle(
    body: ToggleRequest,
    okx_client: OkxClient = Depends(get_okx_client),
    datastore: DataStore = Depends(get_datastore),
    cache: CacheLayer = Depends(get_cache),
) -> ToggleResponse:
    """Watch an unwatched trader, or unwatch a watched one."""
    watched = await toggle_watch(okx_client, datastore, body.inst_id)
    cache.invalidate_prefix(f"series:{body.inst_id}:")
    logger.info("Toggled %s watched=%s", body.inst_id, watched)
    return ToggleResponse(inst_id=body.inst_id, watched=watched)
