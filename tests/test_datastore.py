"""Unit tests for the SQLite DataStore.

Covers schema creation, idempotent upserts, chunked batches, watch-list
operations, snapshot reads and the bucketed series query.
"""

from __future__ import annotations

import sqlite3

import pytest

from leadwatch.datastore import (
    DataStore,
    touch_watched_statement,
    upsert_info_statement,
    upsert_metric_statement,
)
from leadwatch.errors import PersistenceError, ValidationError

from factories import make_info, make_sample

BUCKET = 1_700_000_100_000


def _metric_rows(ds: DataStore, inst_id: str) -> list[sqlite3.Row]:
    return ds._conn.execute(
        "SELECT * FROM watched_trader_metrics WHERE instId = ? ORDER BY timestamp",
        (inst_id,),
    ).fetchall()


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_tables_and_index_exist(self, datastore):
        names = {
            r["name"]
            for r in datastore._conn.execute(
                "SELECT name FROM sqlite_master WHERE type IN ('table', 'index')"
            )
        }
        assert {"watched_traders", "trader_info", "watched_trader_metrics"} <= names
        assert "idx_metrics_timestamp" in names

    def test_reopen_is_idempotent(self, tmp_path):
        path = str(tmp_path / "sub" / "again.db")
        DataStore(path).close()
        with DataStore(path) as ds:
            assert ds.list_watched_ids() == []


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class TestExecuteBatch:
    def test_idempotent_upsert_second_write_wins(self, datastore):
        datastore.execute_batch([upsert_metric_statement(make_sample(timestamp=BUCKET, aum=100.0))])
        datastore.execute_batch([upsert_metric_statement(make_sample(timestamp=BUCKET, aum=222.0))])

        rows = _metric_rows(datastore, "T1")
        assert len(rows) == 1
        assert rows[0]["aum"] == 222.0

    def test_chunks_counted(self, datastore):
        statements = [
            upsert_metric_statement(make_sample(timestamp=BUCKET + i * 300_000))
            for i in range(7)
        ]
        assert datastore.execute_batch(statements, chunk_size=3) == 3
        assert len(_metric_rows(datastore, "T1")) == 7

    def test_failed_chunk_keeps_earlier_chunks(self, datastore):
        statements = [
            upsert_metric_statement(make_sample(timestamp=BUCKET)),
            upsert_metric_statement(make_sample(timestamp=BUCKET + 300_000)),
            upsert_metric_statement(make_sample(timestamp=BUCKET + 600_000)),
            ("INSERT INTO no_such_table VALUES (?)", (1,)),
            upsert_metric_statement(make_sample(timestamp=BUCKET + 900_000)),
        ]
        with pytest.raises(PersistenceError) as exc_info:
            datastore.execute_batch(statements, chunk_size=2)

        assert exc_info.value.chunk_index == 1
        assert exc_info.value.committed_chunks == 1
        # chunk 0 committed, chunk 1 rolled back, chunk 2 never attempted
        assert [r["timestamp"] for r in _metric_rows(datastore, "T1")] == [BUCKET, BUCKET + 300_000]

    def test_empty_batch(self, datastore):
        assert datastore.execute_batch([]) == 0

    def test_rejects_bad_chunk_size(self, datastore):
        with pytest.raises(ValueError):
            datastore.execute_batch([], chunk_size=0)

    def test_info_upsert_overwrites(self, datastore):
        datastore.execute_batch([upsert_info_statement(make_info(nick_name="Old"))])
        datastore.execute_batch([upsert_info_statement(make_info(nick_name="New", trader_insts=["A", "B"]))])

        info = datastore.get_trader_info("T1")
        assert info.nick_name == "New"
        assert info.trader_insts == ["A", "B"]


# ---------------------------------------------------------------------------
# Watch list
# ---------------------------------------------------------------------------


class TestWatchList:
    def test_watch_writes_all_three_tables(self, datastore):
        datastore.watch(make_info("T1"), make_sample("T1"), now_ms=1000)

        assert datastore.is_watched("T1")
        assert datastore.list_watched_ids() == ["T1"]
        assert datastore.get_trader_info("T1") is not None
        assert len(_metric_rows(datastore, "T1")) == 1

    def test_watch_twice_keeps_created_at(self, datastore):
        datastore.watch(make_info("T1"), make_sample("T1"), now_ms=1000)
        datastore.watch(make_info("T1"), make_sample("T1"), now_ms=2000)

        row = datastore._conn.execute("SELECT * FROM watched_traders").fetchone()
        assert row["createdAt"] == 1000
        assert row["updatedAt"] == 2000

    def test_unwatch_keeps_history(self, datastore):
        datastore.watch(make_info("T1"), make_sample("T1"), now_ms=1000)

        assert datastore.unwatch("T1") is True
        assert datastore.unwatch("T1") is False
        assert not datastore.is_watched("T1")
        assert datastore.get_trader_info("T1") is not None
        assert len(_metric_rows(datastore, "T1")) == 1

    def test_touch_updates_only_updated_at(self, datastore):
        datastore.watch(make_info("T1"), make_sample("T1"), now_ms=1000)
        datastore.execute_batch([touch_watched_statement("T1", 5000)])

        row = datastore._conn.execute("SELECT * FROM watched_traders").fetchone()
        assert (row["createdAt"], row["updatedAt"]) == (1000, 5000)

    def test_watched_set(self, datastore):
        datastore.watch(make_info("A"), make_sample("A"), now_ms=1)
        datastore.watch(make_info("B"), make_sample("B"), now_ms=2)
        assert datastore.watched_set() == {"A", "B"}
        assert datastore.list_watched_ids() == ["A", "B"]


class TestWatchedOverview:
    def test_latest_sample_newest_watch_first(self, datastore):
        datastore.watch(make_info("A"), make_sample("A", timestamp=BUCKET), now_ms=1)
        datastore.execute_batch(
            [upsert_metric_statement(make_sample("A", timestamp=BUCKET + 300_000, aum=150.0))]
        )
        datastore.watch(make_info("B"), make_sample("B", timestamp=BUCKET), now_ms=2)

        overview = datastore.list_watched_overview()

        assert [o.inst_id for o in overview] == ["B", "A"]
        assert overview[1].metrics.timestamp == BUCKET + 300_000
        assert overview[1].metrics.aum == 150.0
        assert overview[1].info.nick_name == "Trader A"

    def test_missing_metrics_is_an_error(self, datastore):
        datastore.watch(make_info("A"), make_sample("A"), now_ms=1)
        datastore._conn.execute("DELETE FROM watched_trader_metrics")
        datastore._conn.commit()

        with pytest.raises(ValidationError, match="Expected 1"):
            datastore.list_watched_overview()

    def test_empty(self, datastore):
        assert datastore.list_watched_overview() == []


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestSnapshots:
    def test_exact_bucket_match_only(self, datastore):
        datastore.execute_batch(
            [
                upsert_metric_statement(make_sample("A", timestamp=BUCKET, aum=10.0, invest_amt=5.0)),
                upsert_metric_statement(make_sample("B", timestamp=BUCKET, aum=20.0)),
                upsert_metric_statement(make_sample("A", timestamp=BUCKET + 300_000, aum=99.0)),
                upsert_metric_statement(make_sample("C", timestamp=BUCKET, aum=30.0)),
            ]
        )

        snaps = datastore.get_snapshots(["A", "B", "Z"], BUCKET)

        assert set(snaps) == {"A", "B"}
        assert snaps["A"].aum == 10.0
        assert snaps["A"].invest_amt == 5.0
        assert snaps["A"].lead_pnl == 0.0

    def test_empty_ids(self, datastore):
        assert datastore.get_snapshots([], BUCKET) == {}


class TestBucketedMetrics:
    def test_latest_in_bucket_wins_ascending(self, datastore):
        hour = 3_600_000
        base = 1_699_999_200_000  # hour aligned
        datastore.execute_batch(
            [
                upsert_metric_statement(make_sample(timestamp=base + 2 * hour, aum=4.0)),
                upsert_metric_statement(make_sample(timestamp=base, aum=1.0)),
                upsert_metric_statement(make_sample(timestamp=base + 20 * 60_000, aum=2.0)),
                upsert_metric_statement(make_sample(timestamp=base + 55 * 60_000, aum=3.0)),
            ]
        )

        points = datastore.get_bucketed_metrics("T1", hour, cutoff_ms=0, limit=1000)

        assert [p.timestamp for p in points] == [base + 55 * 60_000, base + 2 * hour]
        assert [p.aum for p in points] == [3.0, 4.0]

    def test_limit_keeps_most_recent(self, datastore):
        datastore.execute_batch(
            [upsert_metric_statement(make_sample(timestamp=BUCKET + i * 300_000)) for i in range(5)]
        )
        points = datastore.get_bucketed_metrics("T1", 300_000, cutoff_ms=0, limit=2)
        assert [p.timestamp for p in points] == [BUCKET + 3 * 300_000, BUCKET + 4 * 300_000]

    def test_cutoff_filters(self, datastore):
        datastore.execute_batch(
            [upsert_metric_statement(make_sample(timestamp=BUCKET + i * 300_000)) for i in range(3)]
        )
        points = datastore.get_bucketed_metrics("T1", 300_000, cutoff_ms=BUCKET + 300_000, limit=10)
        assert len(points) == 2

    def test_other_traders_excluded(self, datastore):
        datastore.execute_batch([upsert_metric_statement(make_sample("OTHER", timestamp=BUCKET))])
        assert datastore.get_bucketed_metrics("T1", 300_000, cutoff_ms=0, limit=10) == []
