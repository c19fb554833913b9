# backend/myquant/services/news_fetcher.py
"""Recent news per ticker via Firecrawl search, plus article scraping.

Neither call raises: a missing key, running out of retries or a bad payload
all come back as an empty (or snippet-only) value flagged on the Result.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from myquant.core.config import settings
from myquant.core.result import ErrorKind, Result
from myquant.core.retry import RetryPolicy
from myquant.logger import get_logger
from myquant.schemas.market import ArticleExcerpt, NewsItem

log = get_logger(__name__)


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname if url else None
    if not host:
        return "Unknown Source"
    return host[4:] if host.startswith("www.") else host


def _error_kind(resp: httpx.Response) -> ErrorKind:
    return ErrorKind.RATE_LIMITED if resp.status_code == 429 else ErrorKind.TRANSIENT


class NewsFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
        results_per_ticker: Optional[int] = None,
        recency: Optional[str] = None,
        excerpt_chars: Optional[int] = None,
    ):
        self.client = client
        self.api_key = api_key if api_key is not None else settings.FIRECRAWL_API_KEY
        self.base_url = (base_url or settings.FIRECRAWL_BASE_URL).rstrip("/")
        self.retry = retry or RetryPolicy(
            max_retries=settings.NEWS_MAX_RETRIES,
            base_delay=settings.NEWS_RETRY_BASE_DELAY,
        )
        self.results_per_ticker = results_per_ticker or settings.NEWS_RESULTS_PER_TICKER
        self.recency = recency or settings.NEWS_RECENCY
        self.excerpt_chars = excerpt_chars or settings.NEWS_EXCERPT_CHARS

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: Dict[str, Any], label: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await self.retry.call(
            lambda: self.client.post(url, json=payload, headers=self._headers()),
            label=label,
        )

    async def find_news(self, ticker: str, company_name: str) -> Result[List[NewsItem]]:
        """Up to ``results_per_ticker`` recent news results for one ticker"""
        if not self.api_key:
            return Result.fallback([], ErrorKind.NOT_CONFIGURED, "FIRECRAWL_API_KEY not set")

        payload = {
            "query": f"{ticker} {company_name} stock news",
            "sources": ["news"],
            "tbs": self.recency,
            "limit": self.results_per_ticker,
        }
        try:
            resp = await self._post("/v2/search", payload, label=f"news search {ticker}")
        except httpx.HTTPError as e:
            log.warning(f"[NEWS] search for {ticker} failed after retries: {e}")
            return Result.fallback([], ErrorKind.TRANSIENT, str(e))

        if resp.status_code != 200:
            log.warning(f"[NEWS] search for {ticker} returned HTTP {resp.status_code}")
            return Result.fallback([], _error_kind(resp), f"HTTP {resp.status_code}")

        try:
            body = resp.json()
            raw = ((body.get("data") or {}).get("news")) or []
        except (ValueError, AttributeError) as e:
            return Result.fallback([], ErrorKind.MISSING_DATA, f"invalid search payload: {e}")

        items: List[NewsItem] = []
        for r in raw:
            if not isinstance(r, dict) or not r.get("url"):
                continue
            try:
                items.append(NewsItem(
                    title=r.get("title") or f"{ticker} News Update",
                    url=r["url"],
                    snippet=r.get("snippet") or "",
                    source=extract_domain(r["url"]),
                    published_at=r.get("date"),
                ))
            except ValidationError:
                continue
            if len(items) >= self.results_per_ticker:
                break

        log.info(f"[NEWS] {ticker}: {len(items)} article(s)")
        if not items:
            return Result.fallback([], ErrorKind.MISSING_DATA, "no news results")
        return Result.success(items)

    async def scrape_article(self, item: NewsItem) -> ArticleExcerpt:
        """Main-content markdown of an article, or its search snippet when scraping fails"""
        fallback = ArticleExcerpt(
            url=item.url,
            title=item.title,
            text=item.snippet[: self.excerpt_chars],
            from_snippet=True,
        )
        if not self.api_key:
            return fallback

        payload = {"url": item.url, "formats": ["markdown"], "onlyMainContent": True}
        try:
            resp = await self._post("/v2/scrape", payload, label=f"scrape {item.url}")
        except httpx.HTTPError as e:
            log.warning(f"[NEWS] scrape failed for {item.url}: {e}")
            return fallback

        if resp.status_code != 200:
            log.warning(f"[NEWS] scrape returned HTTP {resp.status_code} for {item.url}")
            return fallback

        try:
            markdown = ((resp.json().get("data") or {}).get("markdown")) or ""
        except (ValueError, AttributeError):
            return fallback
        if not markdown.strip():
            return fallback

        return ArticleExcerpt(url=item.url, title=item.title, text=markdown[: self.excerpt_chars])
