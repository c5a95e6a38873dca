"""Collection cycle: fetch watched traders, detect swings, persist, notify.

One call to :meth:`Collector.collect_once` runs a full cycle::

    LIST_WATCHED -> FETCH -> DETECT -> PERSIST -> NOTIFY -> DONE

Any fetch or persist failure aborts the cycle before (or while) writing, and
fetches still in flight are cancelled.  Notification failures are logged and
never propagate.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from leadwatch.config import (
    ALERT_HORIZONS,
    ALERT_THRESHOLD_PCT,
    BATCH_CHUNK_SIZE,
    BUCKET_MS,
    FETCH_CONCURRENCY,
)
from leadwatch.datastore import (
    DataStore,
    Statement,
    touch_watched_statement,
    upsert_info_statement,
    upsert_metric_statement,
)
from leadwatch.detector import detect_changes
from leadwatch.errors import CycleInProgressError, NotFoundError
from leadwatch.models import (
    Alert,
    CycleResult,
    MetricSample,
    Snapshot,
    TraderFetch,
    TraderInfo,
    TraderListing,
)
from leadwatch.notifier import Notifier, compose_digest
from leadwatch.okx_client import OkxClient

logger = logging.getLogger(__name__)


@dataclass
class CollectorConfig:
    """Tunables for one :class:`Collector`.

    With ``enable_alerting=False`` the cycle skips history reads, detection
    and notification, and stores the raw statistics ``investAmt`` instead of
    the trade-data asset figure.
    """

    enable_alerting: bool = True
    concurrency: int = FETCH_CONCURRENCY
    threshold_pct: float = ALERT_THRESHOLD_PCT
    horizons: tuple[tuple[str, int], ...] = ALERT_HORIZONS
    chunk_size: int = BATCH_CHUNK_SIZE
    lock_timeout: float = 60.0


def bucket_of(ts_ms: int, bucket_ms: int = BUCKET_MS) -> int:
    """Floor *ts_ms* to its bucket boundary."""
    return ts_ms // bucket_ms * bucket_ms


def _now_ms() -> int:
    return int(time.time() * 1000)


def listing_to_info(listing: TraderListing, u_time: int) -> TraderInfo:
    return TraderInfo(
        inst_id=listing.inst_id,
        nick_name=listing.nick_name,
        ccy=listing.ccy,
        lead_days=listing.lead_days,
        copy_trader_num=listing.copy_trader_num,
        max_copy_trader_num=listing.max_copy_trader_num,
        avatar_url=listing.avatar_url,
        trader_insts=listing.trader_insts,
        u_time=u_time,
    )


def build_sample(
    listing: TraderListing,
    fetched: TraderFetch,
    timestamp: int,
    u_time: int,
) -> MetricSample:
    stats = fetched.stats
    return MetricSample(
        inst_id=listing.inst_id,
        timestamp=timestamp,
        ccy=stats.ccy,
        aum=listing.aum,
        invest_amt=fetched.trader_asset,
        cur_copy_trader_pnl=stats.cur_copy_trader_pnl,
        win_ratio=stats.win_ratio,
        profit_days=stats.profit_days,
        loss_days=stats.loss_days,
        avg_sub_pos_notional=stats.avg_sub_pos_notional,
        lead_pnl=0.0,
        u_time=u_time,
    )


async def gather_or_cancel(*aws):
    """Await *aws* concurrently; on the first failure cancel and drain the rest."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Collector:
    """Runs collection cycles against one client and one store.

    At most one cycle runs at a time per instance; a second trigger waits up
    to ``config.lock_timeout`` seconds and then raises
    :class:`CycleInProgressError`.
    """

    def __init__(
        self,
        client: OkxClient,
        datastore: DataStore,
        notifier: Notifier | None = None,
        config: CollectorConfig | None = None,
    ) -> None:
        self._client = client
        self._datastore = datastore
        self._notifier = notifier
        self._config = config or CollectorConfig()
        self._lock = asyncio.Lock()

    @property
    def config(self) -> CollectorConfig:
        return self._config

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def collect_once(self, now_ms: int | None = None) -> CycleResult:
        """Run one full cycle and return its result record."""
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._config.lock_timeout)
        except asyncio.TimeoutError:
            raise CycleInProgressError(
                f"Collection cycle still running after {self._config.lock_timeout}s"
            ) from None

        try:
            return await self._run_cycle(_now_ms() if now_ms is None else now_ms)
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _run_cycle(self, now_ms: int) -> CycleResult:
        bucket = bucket_of(now_ms)

        # LIST_WATCHED
        watched = self._datastore.list_watched_ids()
        if not watched:
            logger.info("No watched traders, skipping cycle bucket=%d", bucket)
            return CycleResult(status="no_watched", watched_count=0)

        logger.info(
            "Collection cycle start watched=%d bucket=%d alerting=%s",
            len(watched),
            bucket,
            self._config.enable_alerting,
        )

        # FETCH: history snapshots, lead map, per-trader stats and assets
        history = self._load_history(watched, bucket) if self._config.enable_alerting else []
        lead_map, fetched = await gather_or_cancel(
            self._client.fetch_lead_trader_map(watched),
            self._fetch_all(watched),
        )

        # DETECT
        alerts: dict[str, list[Alert]] = {}
        if self._config.enable_alerting:
            alerts = self._detect(watched, lead_map, fetched, history)

        # PERSIST
        statements = self._build_statements(watched, lead_map, fetched, bucket, now_ms)
        chunks = self._datastore.execute_batch(statements, chunk_size=self._config.chunk_size)
        logger.info(
            "Persisted %d statements in %d chunks bucket=%d", len(statements), chunks, bucket
        )

        # NOTIFY
        if alerts:
            nicknames = {inst_id: lead_map[inst_id].nick_name for inst_id in alerts}
            await self._notify(alerts, nicknames, now_ms)

        logger.info(
            "Collection cycle done watched=%d bucket=%d alerts=%d",
            len(watched),
            bucket,
            len(alerts),
        )
        return CycleResult(
            status="success",
            watched_count=len(watched),
            timestamp=bucket,
            alerts_count=len(alerts),
            alerts=alerts,
        )

    async def _fetch_all(self, inst_ids: list[str]) -> dict[str, TraderFetch]:
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def _one(inst_id: str) -> TraderFetch:
            async with semaphore:
                if not self._config.enable_alerting:
                    stats = await self._client.fetch_stats(inst_id)
                    return TraderFetch(inst_id=inst_id, stats=stats, trader_asset=stats.invest_amt)
                stats, asset = await gather_or_cancel(
                    self._client.fetch_stats(inst_id),
                    self._client.fetch_accurate_asset(inst_id),
                )
                return TraderFetch(inst_id=inst_id, stats=stats, trader_asset=asset)

        results = await gather_or_cancel(*(_one(inst_id) for inst_id in inst_ids))
        return {r.inst_id: r for r in results}

    def _load_history(
        self, inst_ids: list[str], bucket: int
    ) -> list[tuple[str, dict[str, Snapshot]]]:
        return [
            (label, self._datastore.get_snapshots(inst_ids, bucket - offset * BUCKET_MS))
            for label, offset in self._config.horizons
        ]

    def _detect(
        self,
        inst_ids: list[str],
        lead_map: dict[str, TraderListing],
        fetched: dict[str, TraderFetch],
        history: list[tuple[str, dict[str, Snapshot]]],
    ) -> dict[str, list[Alert]]:
        alerts: dict[str, list[Alert]] = {}
        for inst_id in inst_ids:
            lead = lead_map.get(inst_id)
            current = fetched.get(inst_id)
            if lead is None or current is None:
                continue

            found = detect_changes(
                current_total=lead.aum + current.trader_asset,
                current_scale=lead.aum,
                history=[(label, snaps.get(inst_id)) for label, snaps in history],
                threshold=self._config.threshold_pct,
            )
            if found:
                alerts[inst_id] = found
        return alerts

    def _build_statements(
        self,
        inst_ids: list[str],
        lead_map: dict[str, TraderListing],
        fetched: dict[str, TraderFetch],
        bucket: int,
        now_ms: int,
    ) -> list[Statement]:
        statements: list[Statement] = []
        for inst_id in inst_ids:
            lead = lead_map.get(inst_id)
            if lead is None:
                raise NotFoundError(
                    f"Watched trader not found in OKX lead-traders list: {inst_id}"
                )
            current = fetched.get(inst_id)
            if current is None:
                raise NotFoundError(f"Missing OKX public-stats result: {inst_id}")

            statements.append(upsert_info_statement(listing_to_info(lead, now_ms)))
            statements.append(upsert_metric_statement(build_sample(lead, current, bucket, now_ms)))
            statements.append(touch_watched_statement(inst_id, now_ms))
        return statements

    async def _notify(
        self,
        alerts: dict[str, list[Alert]],
        nicknames: dict[str, str],
        now_ms: int,
    ) -> None:
        if self._notifier is None:
            logger.info("Alerts raised for %d traders, no notifier configured", len(alerts))
            return

        title, body = compose_digest(alerts, nicknames, now_ms)
        try:
            await self._notifier.send(title, body)
        except Exception:
            logger.exception("Alert notification failed for %d traders", len(alerts))
