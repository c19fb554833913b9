# backend/myquant/tasks/weekly_digest.py
"""
Builds and sends one user's weekly digest.

    LoadData -> RankAndFilter -> FetchPrices -> AnalyzeEachTicker
      -> ComputePortfolioMetrics -> SummarizeOverview -> Dispatch -> Done

Generators (quotes, news, analyst, summarizer) never raise; they hand back
fallback values that are logged as degraded. Anything that does raise here
(store, email delivery, a bug) aborts this user's digest as DigestFailed,
tagged with the state it happened in.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase

from myquant.core.config import settings
from myquant.core.result import ErrorKind, Result
from myquant.core.retry import RetryPolicy
from myquant.db.repositories import HoldingRepository, ResearchStockRepository
from myquant.db.schemas import Holding, ResearchStock, User
from myquant.logger import get_logger
from myquant.schemas.digest import RESEARCH_REASON, DigestEntry, DigestOutcome, PortfolioDigest
from myquant.schemas.market import AnalysisResult, PriceSnapshot
from myquant.services.email_dispatcher import EmailDispatcher
from myquant.services.llm import LLMClient
from myquant.services.news_fetcher import NewsFetcher
from myquant.services.portfolio import (
    compute_portfolio_metrics,
    first_name,
    pct_change,
    rank_holdings,
    select_watchlist,
    week_ending_label,
)
from myquant.services.portfolio_summarizer import PortfolioSummarizer
from myquant.services.price_cache import PriceCache
from myquant.services.quote_fetcher import QuoteFetcher
from myquant.services.stock_analyst import StockAnalyst, fallback_analysis

log = get_logger(__name__)


class DigestState(str, Enum):
    LOAD_DATA = "LoadData"
    RANK_AND_FILTER = "RankAndFilter"
    FETCH_PRICES = "FetchPrices"
    ANALYZE_EACH_TICKER = "AnalyzeEachTicker"
    COMPUTE_PORTFOLIO_METRICS = "ComputePortfolioMetrics"
    SUMMARIZE_OVERVIEW = "SummarizeOverview"
    DISPATCH = "Dispatch"
    DONE = "Done"


class DigestFailed(Exception):
    def __init__(self, user_id: str, state: DigestState, reason: str = ""):
        super().__init__(f"digest for user {user_id} failed in {state.value}: {reason}")
        self.user_id = user_id
        self.state = state


class DigestAssembler:
    def __init__(
        self,
        holdings: HoldingRepository,
        research: ResearchStockRepository,
        quotes: QuoteFetcher,
        news: NewsFetcher,
        analyst: StockAnalyst,
        summarizer: PortfolioSummarizer,
        dispatcher: EmailDispatcher,
        top_holdings: Optional[int] = None,
        top_watchlist: Optional[int] = None,
        ticker_timeout: Optional[float] = None,
        persist_prices: Optional[bool] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.holdings = holdings
        self.research = research
        self.quotes = quotes
        self.news = news
        self.analyst = analyst
        self.summarizer = summarizer
        self.dispatcher = dispatcher
        self.top_holdings = top_holdings or settings.DIGEST_TOP_HOLDINGS
        self.top_watchlist = top_watchlist or settings.DIGEST_TOP_WATCHLIST
        self.ticker_timeout = ticker_timeout or settings.DIGEST_TICKER_TIMEOUT_SECONDS
        self.persist_prices = settings.DIGEST_PERSIST_PRICES if persist_prices is None else persist_prices
        self.clock = clock

    # ---------- per-ticker analysis ----------

    async def _analyze(self, ticker: str, company_name: str, current: float, baseline: float) -> Result[AnalysisResult]:
        found = await self.news.find_news(ticker, company_name)
        if found.degraded:
            log.info(f"[DIGEST] {ticker}: no news ({found.error.value}), analysing on price alone")
        articles = await asyncio.gather(*(self.news.scrape_article(item) for item in found.value))
        return await self.analyst.analyze(ticker, company_name, current, baseline, list(articles))

    async def analyze_ticker(self, ticker: str, company_name: str, current: float, baseline: float) -> Result[AnalysisResult]:
        """Bounded analysis of one ticker; always yields a usable recommendation"""
        try:
            return await asyncio.wait_for(
                self._analyze(ticker, company_name, current, baseline),
                timeout=self.ticker_timeout,
            )
        except asyncio.TimeoutError:
            log.warning(f"[DIGEST] {ticker}: analysis timed out after {self.ticker_timeout:.0f}s")
            return Result.fallback(fallback_analysis(ticker), ErrorKind.TIMEOUT, "timed out")
        except Exception as e:
            log.exception(f"[DIGEST] {ticker}: analysis crashed: {e}")
            return Result.fallback(fallback_analysis(ticker), ErrorKind.TRANSIENT, str(e))

    # ---------- entries ----------

    @staticmethod
    def holding_entry(h: Holding, snap: Optional[PriceSnapshot], analysis: AnalysisResult) -> DigestEntry:
        current = snap.current if snap else (h.current_price or h.bought_price)
        week_ago = snap.week_ago if snap else current
        return DigestEntry(
            symbol=h.ticker,
            company_name=h.company_name,
            current_price=current,
            price_change=current - h.bought_price,
            price_change_percent=pct_change(current, h.bought_price),
            weekly_change=current - week_ago,
            weekly_change_percent=pct_change(current, week_ago),
            weekly_value_change=(current - week_ago) * h.units_held,
            value=h.units_held * current,
            shares=h.units_held,
            recommendation=analysis.recommendation,
            summary=analysis.summary,
            news_urls=analysis.news_urls,
        )

    @staticmethod
    def watchlist_current(s: ResearchStock, snap: Optional[PriceSnapshot]) -> float:
        return snap.current if snap else (s.current_price or 0.0)

    @staticmethod
    def watchlist_entry(s: ResearchStock, snap: Optional[PriceSnapshot], analysis: AnalysisResult) -> DigestEntry:
        if snap:
            current = snap.current
            price_change, price_change_pct = snap.daily_change, snap.daily_change_percent
            weekly, weekly_pct = snap.weekly_change, snap.weekly_change_percent
        else:
            current = s.current_price or 0.0
            price_change, price_change_pct = s.change or 0.0, s.change_percent or 0.0
            weekly, weekly_pct = price_change, price_change_pct
        return DigestEntry(
            symbol=s.ticker,
            company_name=s.company_name,
            current_price=current,
            price_change=price_change,
            price_change_percent=price_change_pct,
            weekly_change=weekly,
            weekly_change_percent=weekly_pct,
            recommendation=analysis.recommendation,
            summary=analysis.summary,
            news_urls=analysis.news_urls,
            research_reason=RESEARCH_REASON,
        )

    # ---------- state machine ----------

    async def run(self, user: User, send: bool = True) -> DigestOutcome:
        user_id = str(user.id)
        state = DigestState.LOAD_DATA
        try:
            holdings = await self.holdings.list_by_user(user.id)
            watchlist = await self.research.list_by_user(user.id)
            if not holdings and not watchlist:
                log.info(f"[DIGEST] user {user_id} has no holdings or watchlist, skipping")
                return DigestOutcome(user_id=user_id, status="skipped")

            state = DigestState.RANK_AND_FILTER
            top = rank_holdings(holdings, self.top_holdings)
            picks = select_watchlist(watchlist, [h.ticker for h in top], self.top_watchlist)

            state = DigestState.FETCH_PRICES
            prices = await self.quotes.fetch_prices([h.ticker for h in top] + [s.ticker for s in picks])
            if self.persist_prices:
                await self._persist_prices(top, prices)

            state = DigestState.ANALYZE_EACH_TICKER
            holding_jobs = [
                self.analyze_ticker(
                    h.ticker, h.company_name,
                    prices[h.ticker].current if h.ticker in prices else (h.current_price or h.bought_price),
                    h.bought_price,
                )
                for h in top
            ]
            watch_jobs = []
            for s in picks:
                current = self.watchlist_current(s, prices.get(s.ticker))
                watch_jobs.append(self.analyze_ticker(s.ticker, s.company_name, current, current))
            results: Sequence[Result[AnalysisResult]] = await asyncio.gather(*holding_jobs, *watch_jobs)

            holding_results, watch_results = results[:len(top)], results[len(top):]
            holding_entries = [self.holding_entry(h, prices.get(h.ticker), r.value) for h, r in zip(top, holding_results)]
            watch_entries = [self.watchlist_entry(s, prices.get(s.ticker), r.value) for s, r in zip(picks, watch_results)]
            degraded = [e.symbol for e, r in zip(holding_entries + watch_entries, results) if r.degraded]

            state = DigestState.COMPUTE_PORTFOLIO_METRICS
            metrics = compute_portfolio_metrics(holding_entries)

            state = DigestState.SUMMARIZE_OVERVIEW
            overview = await self.summarizer.summarize(
                holding_entries, watch_entries,
                metrics.total_value, metrics.weekly_change, metrics.weekly_change_percent,
            )

            state = DigestState.DISPATCH
            digest = PortfolioDigest(
                recipient=user.email,
                first_name=first_name(user.name, user.email),
                week_ending=week_ending_label(self.clock()),
                total_portfolio_value=metrics.total_value,
                weekly_portfolio_change=metrics.weekly_change,
                weekly_portfolio_change_percent=metrics.weekly_change_percent,
                holdings=holding_entries,
                watchlist=watch_entries,
                portfolio_overview=overview.value,
            )
            if not send:
                return DigestOutcome(user_id=user_id, status="preview", digest=digest, degraded_tickers=degraded)

            delivery = await self.dispatcher.send(digest)
        except Exception as e:
            raise DigestFailed(user_id, state, str(e)) from e

        log.info(f"[DIGEST] sent to {user.email}: {len(holding_entries)} holdings, "
                 f"{len(watch_entries)} watchlist, degraded={degraded or 'none'}")
        return DigestOutcome(user_id=user_id, status="sent", digest=digest,
                             delivery=delivery, degraded_tickers=degraded)

    async def _persist_prices(self, holdings: Sequence[Holding], prices: Dict[str, PriceSnapshot]) -> None:
        updated = 0
        for h in holdings:
            snap = prices.get(h.ticker)
            if snap is None:
                continue
            await self.holdings.write_current_price(h.id, snap.current)
            updated += 1
        log.info(f"[DIGEST] updated prices for {updated} of {len(holdings)} holdings")


def build_digest_assembler(
    db: AsyncIOMotorDatabase,
    http: httpx.AsyncClient,
    cache: Optional[PriceCache] = None,
) -> DigestAssembler:
    """Wire the production pipeline around one shared HTTP client"""
    llm = LLMClient()
    return DigestAssembler(
        holdings=HoldingRepository(db),
        research=ResearchStockRepository(db),
        quotes=QuoteFetcher(http, cache=cache or PriceCache(settings.CACHE_TTL_SECONDS)),
        news=NewsFetcher(http, retry=RetryPolicy(settings.NEWS_MAX_RETRIES, settings.NEWS_RETRY_BASE_DELAY)),
        analyst=StockAnalyst(llm),
        summarizer=PortfolioSummarizer(llm),
        dispatcher=EmailDispatcher(),
    )
