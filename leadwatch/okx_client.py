"""Async HTTP client for the OKX copy-trading public API.

Wraps three read-only endpoints (ranked lead-trader listing, per-trader
statistics, per-trader trade data) with retry logic, page walking, a
client-wide concurrency ceiling and strict payload decoding.

Usage::

    async with OkxClient() as client:
        top = await client.list_top_traders(50)
        stats = await client.fetch_stats(top[0].inst_id)
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import httpx

from leadwatch.config import (
    FETCH_CONCURRENCY,
    LISTING_PAGE_SIZE,
    OKX_BASE_URL,
    OKX_INST_TYPE,
    OKX_LEAD_TRADERS_PATH,
    OKX_PUBLIC_STATS_PATH,
    OKX_SORT_TYPE,
    OKX_TRADE_DATA_PATH,
    STATS_LOOKBACK_DAYS,
)
from leadwatch.errors import NotFoundError, OkxAPIError, ValidationError
from leadwatch.models import ListingPage, TopTraderListing, TraderListing, TraderStats
from leadwatch.parsing import (
    check_business_code,
    decode_listing_page,
    decode_rank,
    decode_rank_code,
    decode_stats,
    decode_trade_data,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_MAX_RETRIES = 3
_BACKOFF_SCHEDULE = (2.0, 5.0, 15.0)  # seconds per retry attempt

# Status codes that should never be retried.
_NO_RETRY_CLIENT_ERRORS = frozenset({400, 401, 403, 404, 422})

_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "zh-CN",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}


class OkxClient:
    """Async client for the OKX lead-trader endpoints.

    Parameters
    ----------
    base_url:
        API origin, ``https://www.okx.com`` by default.
    timeout:
        Per-request timeout in seconds.
    max_concurrency:
        Ceiling on simultaneous outbound requests across all callers of this
        client instance.
    transport:
        Optional ``httpx`` transport, used by tests to serve canned payloads.
    """

    def __init__(
        self,
        base_url: str = OKX_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
        max_concurrency: int = FETCH_CONCURRENCY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers=_HEADERS,
            transport=transport,
        )
        self._semaphore = asyncio.Semaphore(max_concurrency)

    # -- async context manager ------------------------------------------------

    async def __aenter__(self) -> OkxClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # -- core request engine --------------------------------------------------

    async def _request(
        self,
        path: str,
        params: dict[str, str],
        *,
        allow_int_code: bool = False,
    ) -> dict[str, Any]:
        """Make a bounded, retried GET request and check the business code.

        Raises
        ------
        OkxAPIError
            On non-retryable client errors, or server/network errors after
            retries are exhausted.
        UpstreamBusinessError
            When the HTTP call succeeded but ``code`` signals failure.
        """
        last_exc: Exception | None = None

        for attempt in range(_MAX_RETRIES):
            backoff = _BACKOFF_SCHEDULE[min(attempt, len(_BACKOFF_SCHEDULE) - 1)]
            logger.debug("OKX request attempt=%d path=%s params=%s", attempt + 1, path, params)

            try:
                async with self._semaphore:
                    response = await self._client.get(path, params=params)
            except httpx.HTTPError as exc:
                last_exc = exc
                logger.warning(
                    "OKX request network error attempt=%d path=%s error=%s",
                    attempt + 1,
                    path,
                    exc,
                )
                if attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)
                continue

            status = response.status_code

            if 200 <= status < 300:
                try:
                    payload = response.json()
                except ValueError:
                    raise ValidationError(f"OKX {path} returned non-JSON body") from None
                return check_business_code(payload, allow_int=allow_int_code)

            if status in _NO_RETRY_CLIENT_ERRORS:
                logger.error("OKX client error status=%d path=%s body=%s", status, path, response.text)
                raise OkxAPIError(status_code=status, detail=response.text)

            if status == 429 or status >= 500:
                logger.warning(
                    "OKX retryable error status=%d attempt=%d path=%s",
                    status,
                    attempt + 1,
                    path,
                )
                last_exc = OkxAPIError(status_code=status, detail=response.text)
                if attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)
                continue

            raise OkxAPIError(status_code=status, detail=response.text)

        if isinstance(last_exc, OkxAPIError):
            raise last_exc
        raise OkxAPIError(
            status_code=0,
            detail=f"All {_MAX_RETRIES} attempts failed for {path}: {last_exc}",
        )

    # -- listing pages --------------------------------------------------------

    async def fetch_listing_page(self, page: int) -> ListingPage:
        """Fetch and decode one page of the ranked lead-trader listing."""
        payload = await self._request(
            OKX_LEAD_TRADERS_PATH,
            {
                "instType": OKX_INST_TYPE,
                "sortType": OKX_SORT_TYPE,
                "limit": str(LISTING_PAGE_SIZE),
                "page": str(page),
            },
        )
        listing = decode_listing_page(payload)
        logger.debug(
            "Listing page=%d total_page=%d ranks=%d", page, listing.total_page, len(listing.ranks)
        )
        return listing

    async def list_top_traders(self, limit: int) -> list[TopTraderListing]:
        """Return the first *limit* ranked traders, in rank order.

        Pages are walked sequentially until *limit* rows are collected or
        pages run out.
        """
        if limit <= 0:
            raise ValidationError(f"Invalid limit: {limit}")

        pages = math.ceil(limit / LISTING_PAGE_SIZE)
        out: list[TopTraderListing] = []

        for page in range(1, pages + 1):
            listing = await self.fetch_listing_page(page)
            for i, raw in enumerate(listing.ranks):
                row = decode_rank(raw, i)
                out.append(
                    TopTraderListing(
                        **row.model_dump(),
                        page=page,
                        position=i + 1 + (page - 1) * LISTING_PAGE_SIZE,
                    )
                )
                if len(out) >= limit:
                    return out
            if page >= listing.total_page:
                break

        return out

    async def lookup_trader(self, inst_id: str) -> TraderListing:
        """Find one trader by walking every listing page.

        Raises
        ------
        NotFoundError
            If no page contains *inst_id*.
        """
        total_page = 1
        page = 1
        while page <= total_page:
            listing = await self.fetch_listing_page(page)
            total_page = listing.total_page
            for i, raw in enumerate(listing.ranks):
                if decode_rank_code(raw, i) == inst_id:
                    return decode_rank(raw, i)
            page += 1

        raise NotFoundError(f"OKX lead-traders: instId not found: {inst_id}")

    async def fetch_lead_trader_map(self, inst_ids: list[str]) -> dict[str, TraderListing]:
        """Resolve listing rows for exactly *inst_ids*.

        Stops as soon as every wanted identity is found.

        Raises
        ------
        NotFoundError
            Naming every identity missing after all pages were walked.
        """
        wanted = set(inst_ids)
        found: dict[str, TraderListing] = {}
        if not wanted:
            return found

        total_page = 1
        page = 1
        while page <= total_page:
            listing = await self.fetch_listing_page(page)
            total_page = listing.total_page

            for i, raw in enumerate(listing.ranks):
                code = decode_rank_code(raw, i)
                if code not in wanted or code in found:
                    continue
                row = decode_rank(raw, i, with_pnl=True)
                if row.pnl != 0:
                    logger.debug("Lead map %s (%s) pnl=%s", code, row.nick_name, row.pnl)
                found[code] = row

            if len(found) == len(wanted):
                break
            page += 1

        missing = [inst_id for inst_id in inst_ids if inst_id not in found]
        if missing:
            raise NotFoundError(
                f"Watched trader(s) not found in OKX lead-traders list: {', '.join(missing)}"
            )
        return found

    # -- per-trader endpoints -------------------------------------------------

    async def fetch_stats(self, inst_id: str) -> TraderStats:
        """Fetch public statistics for one trader."""
        payload = await self._request(
            OKX_PUBLIC_STATS_PATH,
            {
                "instType": OKX_INST_TYPE,
                "uniqueCode": inst_id,
                "lastDays": str(STATS_LOOKBACK_DAYS),
            },
        )
        return decode_stats(payload, inst_id)

    async def fetch_accurate_asset(self, inst_id: str) -> float:
        """Fetch the trader's own asset figure from the trade-data endpoint."""
        payload = await self._request(
            OKX_TRADE_DATA_PATH,
            {"latestNum": "0", "bizType": OKX_INST_TYPE, "uniqueName": inst_id},
            allow_int_code=True,
        )
        trader_asset = decode_trade_data(payload, inst_id)
        logger.info("Trade data %s trader_asset=%s", inst_id, trader_asset)
        return trader_asset

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying ``httpx.AsyncClient``."""
        await self._client.aclose()
