"""SQLite snapshot store for watched lead traders.

Three tables:

- ``watched_traders``: watch-list membership (set semantics).
- ``trader_info``: latest listing info per trader, upserted.
- ``watched_trader_metrics``: 5-minute metric samples keyed by
  ``(instId, timestamp)``; re-collection inside a bucket overwrites.

All writes go through idempotent upserts.  Multi-statement writes are
submitted with :meth:`DataStore.execute_batch`, which applies statements in
sequential chunks, each chunk in its own transaction.

Usage::

    with DataStore("data/leadwatch.db") as ds:
        ids = ds.list_watched_ids()
        snaps = ds.get_snapshots(ids, bucket - BUCKET_MS)
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from collections.abc import Sequence
from typing import Any

from leadwatch.config import BATCH_CHUNK_SIZE
from leadwatch.errors import PersistenceError, ValidationError
from leadwatch.models import (
    MetricSample,
    SeriesPoint,
    Snapshot,
    TraderInfo,
    WatchedOverview,
)

logger = logging.getLogger(__name__)

Statement = tuple[str, tuple[Any, ...]]

_UPSERT_INFO_SQL = """
INSERT INTO trader_info
    (instId, nickName, ccy, leadDays, copyTraderNum, maxCopyTraderNum,
     avatarUrl, traderInsts, uTime)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(instId) DO UPDATE SET
    nickName = excluded.nickName,
    ccy = excluded.ccy,
    leadDays = excluded.leadDays,
    copyTraderNum = excluded.copyTraderNum,
    maxCopyTraderNum = excluded.maxCopyTraderNum,
    avatarUrl = excluded.avatarUrl,
    traderInsts = excluded.traderInsts,
    uTime = excluded.uTime
"""

_UPSERT_METRIC_SQL = """
INSERT INTO watched_trader_metrics
    (instId, timestamp, ccy, aum, investAmt, curCopyTraderPnl, winRatio,
     profitDays, lossDays, avgSubPosNotional, leadPnl, uTime)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(instId, timestamp) DO UPDATE SET
    ccy = excluded.ccy,
    aum = excluded.aum,
    investAmt = excluded.investAmt,
    curCopyTraderPnl = excluded.curCopyTraderPnl,
    winRatio = excluded.winRatio,
    profitDays = excluded.profitDays,
    lossDays = excluded.lossDays,
    avgSubPosNotional = excluded.avgSubPosNotional,
    leadPnl = excluded.leadPnl,
    uTime = excluded.uTime
"""

_UPSERT_WATCH_SQL = """
INSERT INTO watched_traders (instId, createdAt, updatedAt)
VALUES (?, ?, ?)
ON CONFLICT(instId) DO UPDATE SET updatedAt = excluded.updatedAt
"""

_TOUCH_WATCH_SQL = "UPDATE watched_traders SET updatedAt = ? WHERE instId = ?"

_METRIC_COLUMNS = """
    m.timestamp, m.ccy, m.aum, m.investAmt, m.curCopyTraderPnl, m.winRatio,
    m.profitDays, m.lossDays, m.avgSubPosNotional, m.leadPnl, m.uTime
"""


# ---------------------------------------------------------------------------
# Statement builders
# ---------------------------------------------------------------------------


def upsert_info_statement(info: TraderInfo) -> Statement:
    return (
        _UPSERT_INFO_SQL,
        (
            info.inst_id,
            info.nick_name,
            info.ccy,
            info.lead_days,
            info.copy_trader_num,
            info.max_copy_trader_num,
            info.avatar_url,
            json.dumps(info.trader_insts),
            info.u_time,
        ),
    )


def upsert_metric_statement(sample: MetricSample) -> Statement:
    return (
        _UPSERT_METRIC_SQL,
        (
            sample.inst_id,
            sample.timestamp,
            sample.ccy,
            sample.aum,
            sample.invest_amt,
            sample.cur_copy_trader_pnl,
            sample.win_ratio,
            sample.profit_days,
            sample.loss_days,
            sample.avg_sub_pos_notional,
            sample.lead_pnl,
            sample.u_time,
        ),
    )


def upsert_watch_statement(inst_id: str, now_ms: int) -> Statement:
    return (_UPSERT_WATCH_SQL, (inst_id, now_ms, now_ms))


def touch_watched_statement(inst_id: str, now_ms: int) -> Statement:
    return (_TOUCH_WATCH_SQL, (now_ms, inst_id))


# ---------------------------------------------------------------------------
# Row decoding
# ---------------------------------------------------------------------------


def _decode_insts(value: Any, name: str) -> list[str]:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Missing {name}")
    parsed = json.loads(value)
    if not isinstance(parsed, list) or any(not isinstance(x, str) for x in parsed):
        raise ValidationError(f"Invalid {name}: expected JSON string array")
    return parsed


def _row_to_point(row: sqlite3.Row) -> SeriesPoint:
    return SeriesPoint(
        timestamp=row["timestamp"],
        ccy=row["ccy"],
        aum=row["aum"],
        invest_amt=row["investAmt"],
        cur_copy_trader_pnl=row["curCopyTraderPnl"],
        win_ratio=row["winRatio"],
        profit_days=row["profitDays"],
        loss_days=row["lossDays"],
        avg_sub_pos_notional=row["avgSubPosNotional"],
        lead_pnl=row["leadPnl"] or 0.0,
        u_time=row["uTime"],
    )


class DataStore:
    """Synchronous SQLite-backed store for trader info and metric samples."""

    def __init__(self, db_path: str = "data/leadwatch.db") -> None:
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    def __enter__(self) -> "DataStore":
        return self

    def __exit__(self, *args) -> None:  # noqa: ANN002
        self.close()

    # ------------------------------------------------------------------
    # Schema creation
    # ------------------------------------------------------------------

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS watched_traders (
                instId          TEXT PRIMARY KEY,
                createdAt       INTEGER NOT NULL,
                updatedAt       INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS trader_info (
                instId              TEXT PRIMARY KEY,
                nickName            TEXT NOT NULL,
                ccy                 TEXT NOT NULL,
                leadDays            INTEGER NOT NULL,
                copyTraderNum       INTEGER NOT NULL,
                maxCopyTraderNum    INTEGER NOT NULL,
                avatarUrl           TEXT NOT NULL,
                traderInsts         TEXT NOT NULL,
                uTime               INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS watched_trader_metrics (
                instId              TEXT NOT NULL,
                timestamp           INTEGER NOT NULL,
                ccy                 TEXT NOT NULL,
                aum                 REAL NOT NULL,
                investAmt           REAL NOT NULL,
                curCopyTraderPnl    REAL NOT NULL,
                winRatio            REAL NOT NULL,
                profitDays          INTEGER NOT NULL,
                lossDays            INTEGER NOT NULL,
                avgSubPosNotional   REAL NOT NULL,
                leadPnl             REAL DEFAULT 0,
                uTime               INTEGER NOT NULL,
                PRIMARY KEY (instId, timestamp)
            );

            CREATE INDEX IF NOT EXISTS idx_metrics_timestamp
                ON watched_trader_metrics(timestamp);
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Batch writes
    # ------------------------------------------------------------------

    def execute_batch(
        self,
        statements: Sequence[Statement],
        chunk_size: int = BATCH_CHUNK_SIZE,
    ) -> int:
        """Apply *statements* in order, in chunks of at most *chunk_size*.

        Each chunk commits atomically before the next starts.  A failing
        chunk is rolled back and raises :class:`PersistenceError`; chunks
        already committed stay applied.

        Returns the number of chunks committed.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        committed = 0
        for start in range(0, len(statements), chunk_size):
            chunk = statements[start:start + chunk_size]
            try:
                with self._conn:
                    for sql, params in chunk:
                        self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                logger.error(
                    "Batch chunk %d failed (%d statements, %d chunks committed): %s",
                    committed,
                    len(chunk),
                    committed,
                    exc,
                )
                raise PersistenceError(committed, committed, exc) from exc
            committed += 1
            logger.debug("Batch chunk %d committed (%d statements)", committed - 1, len(chunk))
        return committed

    # ------------------------------------------------------------------
    # Watch list
    # ------------------------------------------------------------------

    def list_watched_ids(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT instId FROM watched_traders ORDER BY createdAt, instId"
        ).fetchall()
        return [r["instId"] for r in rows]

    def watched_set(self) -> set[str]:
        return set(self.list_watched_ids())

    def is_watched(self, inst_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM watched_traders WHERE instId = ?", (inst_id,)
        ).fetchone()
        return row is not None

    def watch(self, info: TraderInfo, sample: MetricSample, now_ms: int) -> None:
        """Add *info.inst_id* to the watch list with its first sample."""
        self.execute_batch(
            [
                upsert_info_statement(info),
                upsert_watch_statement(info.inst_id, now_ms),
                upsert_metric_statement(sample),
            ]
        )

    def unwatch(self, inst_id: str) -> bool:
        """Remove *inst_id* from the watch list. Returns whether it was watched."""
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM watched_traders WHERE instId = ?", (inst_id,)
            )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_snapshots(self, inst_ids: Sequence[str], timestamp: int) -> dict[str, Snapshot]:
        """Return samples stored exactly at bucket *timestamp* for *inst_ids*."""
        if not inst_ids:
            return {}
        placeholders = ",".join("?" for _ in inst_ids)
        rows = self._conn.execute(
            f"""SELECT instId, aum, investAmt, leadPnl
                FROM watched_trader_metrics
                WHERE timestamp = ? AND instId IN ({placeholders})""",
            (timestamp, *inst_ids),
        ).fetchall()
        return {
            r["instId"]: Snapshot(
                aum=r["aum"], invest_amt=r["investAmt"], lead_pnl=r["leadPnl"] or 0.0
            )
            for r in rows
        }

    def get_trader_info(self, inst_id: str) -> TraderInfo | None:
        row = self._conn.execute(
            """SELECT instId, nickName, ccy, leadDays, copyTraderNum,
                      maxCopyTraderNum, avatarUrl, traderInsts, uTime
               FROM trader_info WHERE instId = ?""",
            (inst_id,),
        ).fetchone()
        if row is None:
            return None
        return TraderInfo(
            inst_id=row["instId"],
            nick_name=row["nickName"],
            ccy=row["ccy"],
            lead_days=row["leadDays"],
            copy_trader_num=row["copyTraderNum"],
            max_copy_trader_num=row["maxCopyTraderNum"],
            avatar_url=row["avatarUrl"],
            trader_insts=_decode_insts(row["traderInsts"], "traderInsts"),
            u_time=row["uTime"],
        )

    def get_bucketed_metrics(
        self,
        inst_id: str,
        bucket_ms: int,
        cutoff_ms: int,
        limit: int,
    ) -> list[SeriesPoint]:
        """Return one sample per *bucket_ms* bucket since *cutoff_ms*.

        Buckets are ``(timestamp / bucket_ms) * bucket_ms`` with integer
        division; the sample with the greatest timestamp in a bucket
        represents it.  The most recent *limit* buckets are returned in
        ascending timestamp order.
        """
        rows = self._conn.execute(
            f"""SELECT {_METRIC_COLUMNS}
                FROM watched_trader_metrics m
                INNER JOIN (
                    SELECT (timestamp / ?) * ? AS bucket, MAX(timestamp) AS max_ts
                    FROM watched_trader_metrics
                    WHERE instId = ? AND timestamp >= ?
                    GROUP BY bucket
                ) b ON m.timestamp = b.max_ts AND m.instId = ?
                ORDER BY m.timestamp DESC
                LIMIT ?""",
            (bucket_ms, bucket_ms, inst_id, cutoff_ms, inst_id, limit),
        ).fetchall()
        return [_row_to_point(r) for r in reversed(rows)]

    def list_watched_overview(self) -> list[WatchedOverview]:
        """Every watched trader joined with its info and latest sample.

        Newest watch first.

        Raises
        ------
        ValidationError
            If a watched trader lacks an info row or any metric sample.
        """
        watched_count = self._conn.execute(
            "SELECT COUNT(1) AS c FROM watched_traders"
        ).fetchone()["c"]

        rows = self._conn.execute(
            f"""SELECT
                    w.instId, w.createdAt, w.updatedAt,
                    i.nickName, i.ccy AS infoCcy, i.leadDays, i.copyTraderNum,
                    i.maxCopyTraderNum, i.avatarUrl, i.traderInsts,
                    i.uTime AS infoUTime,
                    {_METRIC_COLUMNS}
                FROM watched_traders w
                JOIN trader_info i ON i.instId = w.instId
                JOIN watched_trader_metrics m ON m.instId = w.instId
                WHERE m.timestamp = (
                    SELECT MAX(timestamp) FROM watched_trader_metrics
                    WHERE instId = w.instId
                )
                ORDER BY w.createdAt DESC"""
        ).fetchall()

        if len(rows) != watched_count:
            raise ValidationError(
                f"Expected {watched_count} watched trader rows, got {len(rows)}. "
                "Metrics/info missing?"
            )

        out: list[WatchedOverview] = []
        for r in rows:
            inst_id = r["instId"]
            out.append(
                WatchedOverview(
                    inst_id=inst_id,
                    watched_created_at=r["createdAt"],
                    watched_updated_at=r["updatedAt"],
                    info=TraderInfo(
                        inst_id=inst_id,
                        nick_name=r["nickName"],
                        ccy=r["infoCcy"],
                        lead_days=r["leadDays"],
                        copy_trader_num=r["copyTraderNum"],
                        max_copy_trader_num=r["maxCopyTraderNum"],
                        avatar_url=r["avatarUrl"],
                        trader_insts=_decode_insts(
                            r["traderInsts"], f"traderInsts for {inst_id}"
                        ),
                        u_time=r["infoUTime"],
                    ),
                    metrics=_row_to_point(r),
                )
            )
        return out
