"""Process setup shared by the CLI and the HTTP backend.

- structured logging configuration
- construction of the client, store, notifier and collector from settings
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

from leadwatch.collector import Collector, CollectorConfig
from leadwatch.config import Settings, settings
from leadwatch.datastore import DataStore
from leadwatch.notifier import build_notifier
from leadwatch.okx_client import OkxClient


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def configure_logging(log_format: str | None = None, level: str | None = None) -> None:
    """Configure structlog with JSON (production) or console (development) rendering.

    ``LEADWATCH_LOG_FORMAT=json`` emits JSON lines suitable for log
    aggregation; anything else renders coloured console output.  Stdlib
    loggers (every ``leadwatch`` module, httpx, uvicorn) go through the same
    pipeline via ``ProcessorFormatter``.
    """
    log_format = (log_format if log_format is not None else settings.LOG_FORMAT).lower()
    level = (level or settings.LOG_LEVEL).upper()
    use_json = log_format == "json"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_client(cfg: Settings = settings) -> OkxClient:
    return OkxClient(
        base_url=cfg.OKX_BASE_URL,
        timeout=cfg.OKX_TIMEOUT_SECONDS,
        max_concurrency=cfg.OKX_MAX_CONCURRENCY,
    )


def build_collector(client: OkxClient, datastore: DataStore, cfg: Settings = settings) -> Collector:
    return Collector(
        client,
        datastore,
        notifier=build_notifier(cfg.PUSHPLUS_TOKEN),
        config=CollectorConfig(
            enable_alerting=cfg.ENABLE_ALERTING,
            concurrency=cfg.OKX_MAX_CONCURRENCY,
            lock_timeout=cfg.CYCLE_LOCK_TIMEOUT_SECONDS,
        ),
    )
