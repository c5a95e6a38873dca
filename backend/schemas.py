"""Pydantic v2 request/response models for the lead-watch API.

Responses serialise with camelCase aliases, matching the stored column
names and the OKX payloads.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from leadwatch.models import TopTraderListing, WatchedOverview


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthResponse(_ApiModel):
    """Response model for the health check endpoint."""

    status: str
    db_connected: bool
    watched_count: int
    pushplus_token_set: bool
    cycle_in_progress: bool


# ---------------------------------------------------------------------------
# Top traders
# ---------------------------------------------------------------------------

class TopTraderItem(TopTraderListing):
    watched: bool


class TopTradersResponse(_ApiModel):
    top: list[TopTraderItem]


# ---------------------------------------------------------------------------
# Watch list
# ---------------------------------------------------------------------------

class WatchListResponse(_ApiModel):
    traders: list[WatchedOverview]


class ToggleRequest(_ApiModel):
    inst_id: str = Field(min_length=1)


class ToggleResponse(_ApiModel):
    inst_id: str
    watched: bool
