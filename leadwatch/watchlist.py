"""Watch-list mutations and the top-trader view.

Watching a trader stores its listing info, the membership row and a first
metric sample (raw statistics ``investAmt``) in one batch.  Unwatching only
drops the membership row; info and samples are kept.
"""

from __future__ import annotations

import logging
import time

from leadwatch.collector import bucket_of, build_sample, listing_to_info
from leadwatch.datastore import DataStore
from leadwatch.models import TopTraderListing, TraderFetch
from leadwatch.okx_client import OkxClient

logger = logging.getLogger(__name__)


async def watch_trader(
    client: OkxClient,
    datastore: DataStore,
    inst_id: str,
    now_ms: int | None = None,
) -> None:
    """Resolve *inst_id* on OKX and add it to the watch list."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    listing = await client.lookup_trader(inst_id)
    stats = await client.fetch_stats(inst_id)

    sample = build_sample(
        listing,
        TraderFetch(inst_id=inst_id, stats=stats, trader_asset=stats.invest_amt),
        timestamp=bucket_of(now_ms),
        u_time=now_ms,
    )
    datastore.watch(listing_to_info(listing, now_ms), sample, now_ms)
    logger.info("Watching %s (%s)", inst_id, listing.nick_name)


def unwatch_trader(datastore: DataStore, inst_id: str) -> bool:
    removed = datastore.unwatch(inst_id)
    logger.info("Unwatch %s removed=%s", inst_id, removed)
    return removed


async def toggle_watch(
    client: OkxClient,
    datastore: DataStore,
    inst_id: str,
    now_ms: int | None = None,
) -> bool:
    """Flip *inst_id*'s membership. Returns the new watched state."""
    if datastore.is_watched(inst_id):
        unwatch_trader(datastore, inst_id)
        return False
    await watch_trader(client, datastore, inst_id, now_ms)
    return True


async def top_traders_with_watched(
    client: OkxClient,
    datastore: DataStore,
    limit: int,
) -> list[tuple[TopTraderListing, bool]]:
    """The first *limit* ranked traders, each paired with its watched flag."""
    top = await client.list_top_traders(limit)
    watched = datastore.watched_set()
    return [(row, row.inst_id in watched) for row in top]
