"""Model factories with sensible defaults for stored records."""

from __future__ import annotations

from leadwatch.models import MetricSample, TraderInfo


def make_info(inst_id: str = "T1", **overrides) -> TraderInfo:
    """Return a TraderInfo with sensible defaults."""
    defaults = dict(
        inst_id=inst_id,
        nick_name=f"Trader {inst_id}",
        ccy="USDT",
        lead_days=120,
        copy_trader_num=35,
        max_copy_trader_num=100,
        avatar_url=f"https://static.okx.com/avatar/{inst_id}.png",
        trader_insts=["BTC-USDT-SWAP"],
        u_time=1_700_000_000_000,
    )
    defaults.update(overrides)
    return TraderInfo(**defaults)


def make_sample(inst_id: str = "T1", timestamp: int = 1_700_000_100_000, **overrides) -> MetricSample:
    """Return a MetricSample with sensible defaults at a bucket boundary."""
    defaults = dict(
        inst_id=inst_id,
        timestamp=timestamp,
        ccy="USDT",
        aum=100.0,
        invest_amt=50.0,
        cur_copy_trader_pnl=10.0,
        win_ratio=0.6,
        profit_days=40,
        loss_days=12,
        avg_sub_pos_notional=2500.0,
        lead_pnl=0.0,
        u_time=timestamp,
    )
    defaults.update(overrides)
    return MetricSample(**defaults)
