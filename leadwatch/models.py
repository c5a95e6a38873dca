"""Pydantic models for OKX payloads and internal pipeline records.

Field names are snake_case in Python; every model serialises with the
camelCase aliases the dashboard and the OKX API use (``instId``,
``investAmt`` ...).  ``populate_by_name=True`` lets callers build models with
either spelling.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Lead-trader listing: GET /api/v5/copytrading/public-lead-traders
# ---------------------------------------------------------------------------


class TraderListing(_CamelModel):
    """One decoded row of the ranked lead-trader listing.

    ``inst_id`` is the OKX ``uniqueCode``; ``avatar_url`` is ``portLink``;
    ``aum`` is the copier-contributed scale.
    """

    inst_id: str
    nick_name: str
    ccy: str
    lead_days: int
    copy_trader_num: int
    max_copy_trader_num: int
    avatar_url: str
    trader_insts: list[str]
    aum: float
    pnl: float = 0.0


class TopTraderListing(TraderListing):
    """Listing row annotated with its page and 1-based global rank."""

    page: int
    position: int


class ListingPage(BaseModel):
    """Decoded ``data[0]`` of a listing page: total page count plus raw ranks."""

    total_page: int
    ranks: list[dict]


# ---------------------------------------------------------------------------
# Per-trader statistics: GET /api/v5/copytrading/public-stats
# ---------------------------------------------------------------------------


class TraderStats(_CamelModel):
    ccy: str
    win_ratio: float
    profit_days: int
    loss_days: int
    avg_sub_pos_notional: float
    invest_amt: float
    cur_copy_trader_pnl: float


class TraderFetch(BaseModel):
    """Statistics plus the accurate trader-asset figure for one identity."""

    inst_id: str
    stats: TraderStats
    trader_asset: float


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class Snapshot(_CamelModel):
    """Historical metric values at one bucket, used for change detection."""

    aum: float
    invest_amt: float
    lead_pnl: float = 0.0


class TraderInfo(_CamelModel):
    inst_id: str
    nick_name: str
    ccy: str
    lead_days: int
    copy_trader_num: int
    max_copy_trader_num: int
    avatar_url: str
    trader_insts: list[str]
    u_time: int


class MetricSample(_CamelModel):
    """One row of ``watched_trader_metrics``.

    ``lead_pnl`` is always written as 0 and kept for schema compatibility.
    """

    inst_id: str
    timestamp: int
    ccy: str
    aum: float
    invest_amt: float
    cur_copy_trader_pnl: float
    win_ratio: float
    profit_days: int
    loss_days: int
    avg_sub_pos_notional: float
    lead_pnl: float = 0.0
    u_time: int


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class AlertKind(str, Enum):
    TOTAL = "total"  # scale + trader asset + pnl adjustment
    SCALE = "scale"  # copier-contributed scale only


class Alert(_CamelModel):
    """A threshold crossing for one trader at one horizon."""

    model_config = ConfigDict(frozen=True)

    horizon: str
    kind: AlertKind
    old_value: float
    new_value: float
    percent: float  # fraction, e.g. 0.2 for +20%


# ---------------------------------------------------------------------------
# Collection result
# ---------------------------------------------------------------------------


class CycleResult(_CamelModel):
    status: str
    watched_count: int
    timestamp: int | None = None
    alerts_count: int = 0
    alerts: dict[str, list[Alert]] = {}


# ---------------------------------------------------------------------------
# Series query
# ---------------------------------------------------------------------------


class SeriesPoint(_CamelModel):
    timestamp: int
    ccy: str
    aum: float
    invest_amt: float
    cur_copy_trader_pnl: float
    win_ratio: float
    profit_days: int
    loss_days: int
    avg_sub_pos_notional: float
    lead_pnl: float
    u_time: int


class TraderSeries(_CamelModel):
    inst_id: str
    watched: bool
    info: TraderInfo
    series: list[SeriesPoint]


class WatchedOverview(_CamelModel):
    """A watched trader with its info and latest metric sample."""

    inst_id: str
    watched_created_at: int
    watched_updated_at: int
    info: TraderInfo
    metrics: SeriesPoint
