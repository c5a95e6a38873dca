"""Backend-specific configuration."""
import os

from dotenv import load_dotenv

from leadwatch.config import settings

load_dotenv()

DB_PATH = settings.DB_PATH
ALLOWED_ORIGINS = settings.ALLOWED_ORIGINS
CACHE_TTL_SERIES = settings.CACHE_TTL_SERIES  # 90 s
CACHE_TTL_TOP = settings.CACHE_TTL_TOP  # 60 s
TOP_TRADERS_LIMIT = settings.TOP_TRADERS_LIMIT
PUSHPLUS_TOKEN = settings.PUSHPLUS_TOKEN
COLLECT_INTERVAL_SECONDS = settings.COLLECT_INTERVAL_SECONDS
BACKEND_HOST = os.getenv("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))
