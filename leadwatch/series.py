"""Multi-resolution series reads over the 5-minute metrics table."""

from __future__ import annotations

import logging
import time
from typing import NamedTuple

from leadwatch.config import DEFAULT_RESOLUTION, SERIES_MAX_POINTS
from leadwatch.datastore import DataStore
from leadwatch.errors import InvalidResolutionError, NoDataError, NotFoundError
from leadwatch.models import TraderSeries

logger = logging.getLogger(__name__)

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


class Resolution(NamedTuple):
    bucket_ms: int
    retention_days: int


RESOLUTIONS: dict[str, Resolution] = {
    "5m": Resolution(5 * _MINUTE_MS, 1),
    "15m": Resolution(15 * _MINUTE_MS, 7),
    "30m": Resolution(30 * _MINUTE_MS, 7),
    "1h": Resolution(_HOUR_MS, 7),
    "2h": Resolution(2 * _HOUR_MS, 14),
    "4h": Resolution(4 * _HOUR_MS, 28),
    "8h": Resolution(8 * _HOUR_MS, 56),
    "1d": Resolution(_DAY_MS, 90),
    "1w": Resolution(7 * _DAY_MS, 365),
}


def get_resolution(tag: str) -> Resolution:
    try:
        return RESOLUTIONS[tag]
    except KeyError:
        raise InvalidResolutionError(tag, list(RESOLUTIONS)) from None


class SeriesResolver:
    """Answers "last N days of trader X at resolution R" from raw samples."""

    def __init__(self, datastore: DataStore, max_points: int = SERIES_MAX_POINTS) -> None:
        self._datastore = datastore
        self._max_points = max_points

    def resolve(
        self,
        inst_id: str,
        resolution: str = DEFAULT_RESOLUTION,
        now_ms: int | None = None,
    ) -> TraderSeries:
        """Downsample *inst_id*'s samples to *resolution*.

        Each bucket is represented by its most recent raw sample.  Points are
        returned oldest first, at most ``max_points`` of them.

        Raises
        ------
        InvalidResolutionError
            If *resolution* is not a key of :data:`RESOLUTIONS`.
        NotFoundError
            If the trader has no info row.
        NoDataError
            If the trader is known but has no samples inside the window.
        """
        res = get_resolution(resolution)
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        cutoff = now_ms - res.retention_days * _DAY_MS

        info = self._datastore.get_trader_info(inst_id)
        if info is None:
            logger.info("Series miss: unknown trader %s", inst_id)
            raise NotFoundError(f"Trader not found: {inst_id}")

        points = self._datastore.get_bucketed_metrics(
            inst_id, res.bucket_ms, cutoff, self._max_points
        )
        if not points:
            logger.info("Series miss: no samples for %s at %s", inst_id, resolution)
            raise NoDataError(f"No metrics data found for {inst_id}. Watch it first to collect data.")

        return TraderSeries(
            inst_id=inst_id,
            watched=self._datastore.is_watched(inst_id),
            info=info,
            series=points,
        )
