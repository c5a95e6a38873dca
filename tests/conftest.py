"""Shared pytest fixtures for the lead-watch test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from leadwatch.datastore import DataStore


@pytest.fixture()
def datastore(tmp_path) -> DataStore:
    """Provide a fresh file-backed DataStore with all tables created.

    The connection is closed automatically after the test finishes.
    """
    ds = DataStore(str(tmp_path / "leadwatch.db"))
    yield ds
    ds.close()


@pytest.fixture()
def no_sleep():
    """Patch ``asyncio.sleep`` in the client so retry backoff is instant."""
    with patch("leadwatch.okx_client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep
