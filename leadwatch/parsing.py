"""Strict decoders for OKX payloads.

One decode function per payload shape.  Every field is checked for presence
and type before use; a missing, empty or non-finite value raises
:class:`~leadwatch.errors.ValidationError` naming the offending field path
(``ranks[3].nickName``).  Nothing is defaulted.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from leadwatch.config import OKX_ASSET_FUNCTION_ID
from leadwatch.errors import UpstreamBusinessError, ValidationError
from leadwatch.models import ListingPage, TraderListing, TraderStats

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def require_str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Missing {name}")
    return value


def parse_number(value: Any, name: str) -> float:
    """Parse a JSON number or numeric string into a finite float."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: {value!r}")
    if isinstance(value, (int, float)):
        n = float(value)
    elif isinstance(value, str) and value.strip() and "_" not in value:
        try:
            n = float(value)
        except ValueError:
            raise ValidationError(f"Invalid {name}: {value!r}") from None
    else:
        raise ValidationError(f"Invalid {name}: {value!r}")
    if not math.isfinite(n):
        raise ValidationError(f"Invalid {name}: {value!r}")
    return n


def parse_int(value: Any, name: str) -> int:
    """Parse an integer field.

    Strings use leading-integer semantics (``"12.7"`` -> 12, ``"7d"`` -> 7),
    numbers are truncated toward zero.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Invalid {name}: {value!r}")
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    raise ValidationError(f"Invalid {name}: {value!r}")


def _require_str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list) or any(
        not isinstance(x, str) or not x for x in value
    ):
        raise ValidationError(f"Invalid {name}")
    return list(value)


def _first_data_row(payload: Any, name: str) -> dict[str, Any]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise ValidationError(f"Unexpected OKX payload: missing {name}")
    return data[0]


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def check_business_code(payload: Any, *, allow_int: bool = False) -> dict[str, Any]:
    """Return *payload* if its embedded ``code`` signals success.

    OKX reports business failures with HTTP 200 and a non-zero ``code``.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Unexpected OKX payload: expected JSON object")
    code = payload.get("code")
    if code == "0" or (allow_int and code == 0 and not isinstance(code, bool)):
        return payload
    raise UpstreamBusinessError(code, json.dumps(payload, ensure_ascii=False)[:500])


# ---------------------------------------------------------------------------
# Payload decoders
# ---------------------------------------------------------------------------


def decode_listing_page(payload: Any) -> ListingPage:
    """Decode ``data[0]`` of a lead-trader listing page."""
    data0 = _first_data_row(payload, "data[0]")
    total_page = parse_int(data0.get("totalPage"), "public-lead-traders.totalPage")
    ranks = data0.get("ranks")
    if not isinstance(ranks, list):
        raise ValidationError("Unexpected OKX payload: missing data[0].ranks")
    return ListingPage(total_page=total_page, ranks=ranks)


def decode_rank_code(raw: Any, index: int) -> str:
    row = raw if isinstance(raw, dict) else {}
    return require_str(row.get("uniqueCode"), f"ranks[{index}].uniqueCode")


def decode_rank(raw: Any, index: int, *, with_pnl: bool = False) -> TraderListing:
    """Decode one ``ranks[i]`` entry into a :class:`TraderListing`."""
    row = raw if isinstance(raw, dict) else {}
    prefix = f"ranks[{index}]"
    pnl = parse_number(row.get("pnl"), f"{prefix}.pnl") if with_pnl else 0.0
    return TraderListing(
        inst_id=decode_rank_code(row, index),
        nick_name=require_str(row.get("nickName"), f"{prefix}.nickName"),
        ccy=require_str(row.get("ccy"), f"{prefix}.ccy"),
        lead_days=parse_int(row.get("leadDays"), f"{prefix}.leadDays"),
        copy_trader_num=parse_int(row.get("copyTraderNum"), f"{prefix}.copyTraderNum"),
        max_copy_trader_num=parse_int(
            row.get("maxCopyTraderNum"), f"{prefix}.maxCopyTraderNum"
        ),
        avatar_url=require_str(row.get("portLink"), f"{prefix}.portLink"),
        trader_insts=_require_str_list(row.get("traderInsts"), f"{prefix}.traderInsts"),
        aum=parse_number(row.get("aum"), f"{prefix}.aum"),
        pnl=pnl,
    )


def decode_stats(payload: Any, inst_id: str) -> TraderStats:
    """Decode the public-stats payload for *inst_id*."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise ValidationError(f"Missing OKX public-stats data for {inst_id}")
    row = data[0]

    def name(field: str) -> str:
        return f"public-stats.{field} for {inst_id}"

    return TraderStats(
        ccy=require_str(row.get("ccy"), name("ccy")),
        win_ratio=parse_number(row.get("winRatio"), name("winRatio")),
        profit_days=parse_int(row.get("profitDays"), name("profitDays")),
        loss_days=parse_int(row.get("lossDays"), name("lossDays")),
        avg_sub_pos_notional=parse_number(
            row.get("avgSubPosNotional"), name("avgSubPosNotional")
        ),
        invest_amt=parse_number(row.get("investAmt"), name("investAmt")),
        cur_copy_trader_pnl=parse_number(
            row.get("curCopyTraderPnl"), name("curCopyTraderPnl")
        ),
    )


def decode_trade_data(payload: Any, inst_id: str) -> float:
    """Extract the trader-asset figure from a trade-data payload.

    The figure sits in ``data[0].nonPeriodicPart``, an unordered list of
    typed entries; the one tagged ``functionId == "asset"`` is required.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    row = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}
    entries = row.get("nonPeriodicPart")
    if not isinstance(entries, list):
        raise ValidationError(f"Missing trade-data.nonPeriodicPart for {inst_id}")

    for entry in entries:
        if isinstance(entry, dict) and entry.get("functionId") == OKX_ASSET_FUNCTION_ID:
            return parse_number(entry.get("value"), f"trade-data.asset for {inst_id}")

    raise ValidationError(f'Missing "asset" field in trade-data for {inst_id}')
