"""Configuration for the lead-trader watch pipeline.

Fixed pipeline constants live at module level so they can be adjusted in one
place.  Deployment-specific values (paths, tokens, intervals) are read from
``LEADWATCH_*`` environment variables, or a ``.env`` file, via
:class:`Settings`.
"""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

# ---------------------------------------------------------------------------
# Time buckets
# ---------------------------------------------------------------------------

BUCKET_MS = 5 * 60 * 1000  # canonical raw resolution of the metrics table

# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------

ALERT_THRESHOLD_PCT = 0.05  # 5%, inclusive

# (label, offset in buckets)
ALERT_HORIZONS: tuple[tuple[str, int], ...] = (
    ("5m", 1),
    ("1h", 12),
    ("24h", 288),
)

# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

FETCH_CONCURRENCY = 2
BATCH_CHUNK_SIZE = 90  # max statements per physical batch
LISTING_PAGE_SIZE = 20
STATS_LOOKBACK_DAYS = 4

# ---------------------------------------------------------------------------
# Series queries
# ---------------------------------------------------------------------------

SERIES_MAX_POINTS = 1000
DEFAULT_RESOLUTION = "5m"

# ---------------------------------------------------------------------------
# OKX endpoints
# ---------------------------------------------------------------------------

OKX_BASE_URL = "https://www.okx.com"
OKX_LEAD_TRADERS_PATH = "/api/v5/copytrading/public-lead-traders"
OKX_PUBLIC_STATS_PATH = "/api/v5/copytrading/public-stats"
OKX_TRADE_DATA_PATH = "/priapi/v5/ecotrade/public/trader/trade-data"
OKX_INST_TYPE = "SWAP"
OKX_SORT_TYPE = "overview"
OKX_ASSET_FUNCTION_ID = "asset"

PUSHPLUS_URL = "https://www.pushplus.plus/send"


class Settings(BaseSettings):
    """Runtime settings, overridable via ``LEADWATCH_*`` env vars."""

    model_config = SettingsConfigDict(env_prefix="LEADWATCH_", extra="ignore")

    # --- Storage ---
    DB_PATH: str = "data/leadwatch.db"

    # --- Market source ---
    OKX_BASE_URL: str = OKX_BASE_URL
    OKX_TIMEOUT_SECONDS: float = 30.0
    OKX_MAX_CONCURRENCY: int = FETCH_CONCURRENCY

    # --- Collection ---
    ENABLE_ALERTING: bool = True
    COLLECT_INTERVAL_SECONDS: int = 300
    CYCLE_LOCK_TIMEOUT_SECONDS: float = 60.0
    TOP_TRADERS_LIMIT: int = 50

    # --- Notifications ---
    PUSHPLUS_TOKEN: str = ""

    # --- Logging ---
    LOG_FORMAT: str = ""  # "json" | "console"; empty picks console
    LOG_LEVEL: str = "INFO"

    # --- HTTP API ---
    ALLOWED_ORIGINS: list[str] = Field(default=["http://localhost:4321"])
    CACHE_TTL_SERIES: int = 90
    CACHE_TTL_TOP: int = 60


settings = Settings()
