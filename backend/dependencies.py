"""FastAPI dependency injection helpers."""
from __future__ import annotations

from fastapi import Request

from backend.cache import CacheLayer
from leadwatch.collector import Collector
from leadwatch.datastore import DataStore
from leadwatch.okx_client import OkxClient
from leadwatch.series import SeriesResolver


def get_okx_client(request: Request) -> OkxClient:
    """Return the shared OkxClient from app state."""
    return request.app.state.okx_client


def get_datastore(request: Request) -> DataStore:
    """Return the shared DataStore from app state."""
    return request.app.state.datastore


def get_collector(request: Request) -> Collector:
    return request.app.state.collector


def get_series_resolver(request: Request) -> SeriesResolver:
    return request.app.state.series_resolver


def get_cache(request: Request) -> CacheLayer:
    """Return the shared CacheLayer from app state."""
    return request.app.state.cache
