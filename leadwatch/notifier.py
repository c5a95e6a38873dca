"""Alert formatting and delivery.

:func:`format_alert` and :func:`compose_digest` turn structured
:class:`~leadwatch.models.Alert` values into the human-readable digest;
a :class:`Notifier` delivers it.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Protocol

import httpx

from leadwatch.config import PUSHPLUS_URL
from leadwatch.models import Alert, AlertKind

logger = logging.getLogger(__name__)

DIGEST_TZ = timezone(timedelta(hours=8))

_KIND_LABELS = {
    AlertKind.TOTAL: "Total assets",
    AlertKind.SCALE: "Copy scale",
}


class Notifier(Protocol):
    async def send(self, title: str, body: str) -> bool: ...


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_alert(alert: Alert) -> str:
    """Render one alert as ``[1h] Total assets: 150 -> 180 (▲ surge 20.0%)``."""
    direction = "▲ surge" if alert.percent > 0 else "▼ drop"
    return (
        f"[{alert.horizon}] {_KIND_LABELS[alert.kind]}: "
        f"{alert.old_value:.0f} -> {alert.new_value:.0f} "
        f"({direction} {alert.percent * 100:.1f}%)"
    )


def compose_digest(
    alerts_by_trader: Mapping[str, Sequence[Alert]],
    nicknames: Mapping[str, str],
    now_ms: int,
) -> tuple[str, str]:
    """Build ``(title, html_body)`` for one cycle's alerts, grouped per trader."""
    stamp = datetime.fromtimestamp(now_ms / 1000, tz=DIGEST_TZ).strftime("%Y-%m-%d %H:%M:%S")
    title = f"Asset swing alert {stamp}"

    blocks = []
    for inst_id, alerts in alerts_by_trader.items():
        if not alerts:
            continue
        name = html.escape(nicknames.get(inst_id, inst_id))
        lines = "<br/>".join(format_alert(a) for a in alerts)
        blocks.append(f"👤 <b>{name}</b>:<br/>{lines}")

    return title, "<br/><br/>".join(blocks)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class LogNotifier:
    """Writes the digest to the log instead of pushing it anywhere."""

    async def send(self, title: str, body: str) -> bool:
        logger.warning("Alert digest (no push token configured): %s\n%s", title, body)
        return True


class PushPlusNotifier:
    """Delivers digests through the PushPlus WeChat gateway."""

    def __init__(
        self,
        token: str,
        url: str = PUSHPLUS_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("PushPlus token is required")
        self._token = token
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def send(self, title: str, body: str) -> bool:
        """POST the digest; returns whether PushPlus accepted it.

        Transport errors propagate to the caller.
        """
        payload = {
            "token": self._token,
            "title": title,
            "content": body,
            "template": "html",
            "channel": "wechat",
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json=payload)

        try:
            result = response.json()
        except ValueError:
            result = None

        if not isinstance(result, dict) or result.get("code") != 200:
            logger.error(
                "PushPlus rejected notification status=%d body=%s",
                response.status_code,
                response.text[:500],
            )
            return False

        logger.info("PushPlus notification sent title=%s", title)
        return True


def build_notifier(token: str) -> Notifier:
    """PushPlus when a token is configured, log-only otherwise."""
    if token:
        return PushPlusNotifier(token)
    return LogNotifier()
