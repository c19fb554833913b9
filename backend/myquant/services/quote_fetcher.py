# backend/myquant/services/quote_fetcher.py
"""Current and week-ago prices from the Yahoo Finance chart endpoint.

Each ticker is fetched independently: first the 7-day daily series, and if
that fails the bare chart endpoint (no range) as a degraded fallback. A ticker
both requests fail for is simply absent from the returned map.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from myquant.core.config import settings
from myquant.logger import get_logger
from myquant.schemas.market import ChartResponse, ChartResult, PriceSnapshot
from myquant.services.portfolio import pct_change
from myquant.services.price_cache import PriceCache

log = get_logger(__name__)

YAHOO_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
}


class QuoteError(Exception):
    """A single chart request produced nothing usable"""


def snapshot_from_series(result: ChartResult) -> PriceSnapshot:
    closes = result.valid_closes()
    meta = result.meta

    current = meta.regularMarketPrice or (closes[-1] if closes else None)
    if not current:
        raise QuoteError("no current price in series")

    week_ago = closes[0] if closes else current
    previous_close = meta.previousClose or meta.chartPreviousClose or current

    daily = current - previous_close
    weekly = current - week_ago
    return PriceSnapshot(
        current=current,
        week_ago=week_ago,
        previous_close=previous_close,
        daily_change=daily,
        daily_change_percent=pct_change(current, previous_close),
        weekly_change=weekly,
        weekly_change_percent=pct_change(current, week_ago),
    )


def snapshot_from_meta(result: ChartResult) -> PriceSnapshot:
    """Fallback: only the quote header, so a week of change is approximated by one day"""
    meta = result.meta
    current = meta.regularMarketPrice or meta.previousClose
    if not current:
        raise QuoteError("no price in chart meta")
    previous_close = meta.previousClose or current
    change = current - previous_close
    percent = pct_change(current, previous_close)
    return PriceSnapshot(
        current=current,
        week_ago=previous_close,
        previous_close=previous_close,
        daily_change=change,
        daily_change_percent=percent,
        weekly_change=change,
        weekly_change_percent=percent,
        degraded=True,
    )


class QuoteFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: Optional[PriceCache] = None,
        base_url: Optional[str] = None,
        lookback_days: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.client = client
        self.cache = cache
        self.base_url = (base_url or settings.YAHOO_CHART_URL).rstrip("/")
        self.lookback_days = lookback_days or settings.QUOTE_LOOKBACK_DAYS
        self._gate = asyncio.Semaphore(max_concurrency or settings.QUOTE_MAX_CONCURRENCY)

    async def _chart(self, ticker: str, params: Optional[dict] = None) -> ChartResult:
        try:
            resp = await self.client.get(f"{self.base_url}/{ticker}", params=params, headers=YAHOO_HEADERS)
        except httpx.HTTPError as e:
            raise QuoteError(f"transport error: {e}") from e
        if resp.status_code != 200:
            raise QuoteError(f"HTTP {resp.status_code}")
        try:
            parsed = ChartResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise QuoteError(f"invalid chart payload: {e}") from e
        result = parsed.first()
        if result is None:
            raise QuoteError("empty chart result")
        return result

    async def fetch_one(self, ticker: str) -> Optional[PriceSnapshot]:
        ticker = ticker.strip().upper()
        if self.cache is not None:
            cached = self.cache.get(ticker)
            if cached is not None:
                return cached

        now = int(time.time())
        params = {
            "period1": now - self.lookback_days * 24 * 60 * 60,
            "period2": now,
            "interval": "1d",
        }
        async with self._gate:
            try:
                snap = snapshot_from_series(await self._chart(ticker, params))
            except QuoteError as e:
                log.warning(f"[QUOTES] series failed for {ticker} ({e}), trying quote fallback")
                try:
                    snap = snapshot_from_meta(await self._chart(ticker))
                except QuoteError as e2:
                    log.error(f"[QUOTES] no price for {ticker}: {e2}")
                    return None

        if self.cache is not None and not snap.degraded:
            self.cache.put(ticker, snap)
        return snap

    async def fetch_prices(self, tickers: Iterable[str]) -> Dict[str, PriceSnapshot]:
        """Snapshot per ticker; tickers with no data at all are left out"""
        unique: List[str] = list(dict.fromkeys(t.strip().upper() for t in tickers if t and t.strip()))
        if not unique:
            return {}
        snaps = await asyncio.gather(*(self.fetch_one(t) for t in unique))
        prices = {t: s for t, s in zip(unique, snaps) if s is not None}
        log.info(f"[QUOTES] {len(prices)}/{len(unique)} tickers priced")
        return prices

    async def validate_ticker(self, ticker: str) -> dict:
        """Check a ticker exists and resolve its company name"""
        ticker = (ticker or "").strip().upper()
        if not 1 <= len(ticker) <= 10:
            return {"is_valid": False, "company_name": None, "error": "Ticker must be between 1 and 10 characters"}
        if not all(c.isalnum() or c in ".-" for c in ticker):
            return {"is_valid": False, "company_name": None, "error": "Ticker can only contain letters, numbers, and dots"}
        try:
            result = await self._chart(ticker)
        except QuoteError as e:
            return {"is_valid": False, "company_name": None, "error": str(e)}
        meta = result.meta
        if not (meta.regularMarketPrice or meta.previousClose):
            return {"is_valid": False, "company_name": None, "error": "No price data available for this ticker"}
        return {"is_valid": True, "company_name": meta.longName or meta.shortName or ticker, "error": None}
