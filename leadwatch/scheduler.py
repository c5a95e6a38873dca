"""Periodic collection loop.

Runs one cycle at startup, then one per interval aligned to wall-clock
boundaries (every 5 minutes by default: :00, :05, :10 ...).
"""

from __future__ import annotations

import asyncio
import logging
import time

from leadwatch.collector import Collector
from leadwatch.config import BUCKET_MS

logger = logging.getLogger(__name__)


def seconds_until_boundary(now_s: float, interval_s: float) -> float:
    """Seconds from *now_s* to the next multiple of *interval_s*."""
    remainder = now_s % interval_s
    return interval_s - remainder


async def run_scheduler(collector: Collector, interval: float = BUCKET_MS / 1000) -> None:
    """Run collection cycles forever.

    Cycle failures are logged and the loop continues with the next boundary.
    Cancel the task to stop it.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    logger.info("Starting scheduler interval=%ss", interval)

    while True:
        try:
            result = await collector.collect_once()
            logger.info(
                "Scheduled cycle status=%s watched=%d alerts=%d",
                result.status,
                result.watched_count,
                result.alerts_count,
            )
        except Exception as e:
            logger.error(f"Scheduled collection cycle failed: {e}", exc_info=True)

        delay = seconds_until_boundary(time.time(), interval)
        logger.debug("Next cycle in %.1fs", delay)
        await asyncio.sleep(delay)
