"""Percentage-change detection against historical snapshots.

Pure functions, no I/O.  Formatting of the resulting :class:`Alert` values
happens in :mod:`leadwatch.notifier`.
"""

from __future__ import annotations

from collections.abc import Iterable

from leadwatch.config import ALERT_THRESHOLD_PCT
from leadwatch.models import Alert, AlertKind, Snapshot


def pct_change(old: float, new: float) -> float | None:
    """Return ``(new - old) / old``, or ``None`` when *old* is not positive."""
    if old <= 0:
        return None
    return (new - old) / old


def check_change(
    horizon: str,
    current_total: float,
    current_scale: float,
    old: Snapshot | None,
    threshold: float = ALERT_THRESHOLD_PCT,
) -> list[Alert]:
    """Run the total-asset and scale-only checks for one horizon.

    Parameters
    ----------
    horizon:
        Label of the lookback offset (``"5m"``, ``"1h"``, ``"24h"``).
    current_total:
        Current scale plus trader-owned asset.
    current_scale:
        Current copier-contributed scale alone.
    old:
        Snapshot at the horizon's bucket, or ``None`` when no history exists
        yet (no alerts, not an error).
    threshold:
        Absolute fractional change that fires an alert, inclusive.

    Returns
    -------
    list[Alert]
        Zero, one or two alerts; both checks are independent.
    """
    if old is None:
        return []

    alerts: list[Alert] = []
    old_total = old.aum + old.invest_amt + old.lead_pnl

    for kind, before, after in (
        (AlertKind.TOTAL, old_total, current_total),
        (AlertKind.SCALE, old.aum, current_scale),
    ):
        pct = pct_change(before, after)
        if pct is not None and abs(pct) >= threshold:
            alerts.append(
                Alert(horizon=horizon, kind=kind, old_value=before, new_value=after, percent=pct)
            )

    return alerts


def detect_changes(
    current_total: float,
    current_scale: float,
    history: Iterable[tuple[str, Snapshot | None]],
    threshold: float = ALERT_THRESHOLD_PCT,
) -> list[Alert]:
    """Run :func:`check_change` for every ``(horizon, snapshot)`` pair in order."""
    alerts: list[Alert] = []
    for horizon, old in history:
        alerts.extend(check_change(horizon, current_total, current_scale, old, threshold))
    return alerts
