# backend/tests/factories.py
"""Builders and in-memory fakes shared by the test modules"""
import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from jose import jwt
from pymongo.errors import DuplicateKeyError

from myquant.core.config import settings
from myquant.core.result import ErrorKind, Result
from myquant.core.security import ALGORITHM
from myquant.db.schemas import Holding, ResearchStock, User
from myquant.schemas.digest import DeliveryResult
from myquant.schemas.market import AnalysisResult, ArticleExcerpt, NewsItem, Recommendation
from myquant.services.email_dispatcher import EmailDispatcher
from myquant.services.stock_analyst import fallback_analysis

BASE_TIME = datetime(2026, 10, 16, 21, 30, tzinfo=timezone.utc)


def make_user(email="jane@example.com", name="Jane Doe", **kw) -> User:
    return User(email=email, name=name, **kw)


def make_holding(user, ticker, units, bought, current=None, company=None, **kw) -> Holding:
    return Holding(
        user_id=user.id,
        ticker=ticker,
        company_name=company or f"{ticker} Inc.",
        units_held=units,
        bought_price=bought,
        current_price=current,
        purchase_date="2026-01-02",
        **kw,
    )


def make_research(user, ticker, days_ago=0, company=None, **kw) -> ResearchStock:
    return ResearchStock(
        user_id=user.id,
        ticker=ticker,
        company_name=company or f"{ticker} Corp.",
        added_date=BASE_TIME - timedelta(days=days_ago),
        **kw,
    )


class FakeHoldingRepo:
    def __init__(self, holdings=()):
        self.holdings = list(holdings)
        self.written = {}

    async def list_by_user(self, user_id):
        return [h for h in self.holdings if h.user_id == user_id]

    async def write_current_price(self, holding_id, price):
        self.written[str(holding_id)] = round(price, 2)
        return True


class FakeResearchRepo:
    def __init__(self, stocks=()):
        self.stocks = list(stocks)

    async def list_by_user(self, user_id):
        return [s for s in self.stocks if s.user_id == user_id]


class FakeUserRepo:
    def __init__(self, users=()):
        self.users = list(users)

    async def list_active(self):
        return [u for u in self.users if u.is_active]

    async def find_by_id(self, user_id):
        for u in self.users:
            if str(u.id) == str(user_id):
                return u.to_document()
        return None


def make_token(sub, minutes=30) -> str:
    """Bearer token shaped like the ones the auth service issues"""
    claims = {"sub": str(sub), "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes)}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


class InMemoryCollection:
    """Just enough of a motor collection for the repositories.

    Every call yields to the event loop first so concurrent callers interleave
    the way they would against a real server. ``unique`` lists the fields of a
    unique index.
    """

    def __init__(self, unique=()):
        self.docs = []
        self.unique = tuple(unique)

    @staticmethod
    def _matches(doc, filter_):
        return all(doc.get(k) == v for k, v in filter_.items())

    async def find_one(self, filter_):
        await asyncio.sleep(0)
        for doc in self.docs:
            if self._matches(doc, filter_):
                return dict(doc)
        return None

    async def insert_one(self, document):
        await asyncio.sleep(0)
        if self.unique and any(all(d.get(k) == document.get(k) for k in self.unique) for d in self.docs):
            raise DuplicateKeyError("E11000 duplicate key error")
        self.docs.append(dict(document))
        return SimpleNamespace(inserted_id=document.get("_id"))

    async def update_one(self, filter_, update):
        await asyncio.sleep(0)
        for doc in self.docs:
            if self._matches(doc, filter_):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)


def in_memory_db(collection):
    db = MagicMock()
    db.__getitem__.return_value = collection
    return db


# ---------- digest pipeline fakes ----------

class FakeQuotes:
    def __init__(self, prices):
        self.prices = prices
        self.requested = []

    async def fetch_prices(self, tickers):
        self.requested.append(list(tickers))
        return {t: self.prices[t] for t in tickers if t in self.prices}


class FakeNews:
    async def find_news(self, ticker, company_name):
        return Result.success([NewsItem(title=f"{ticker} news", url=f"https://news.test/{ticker}", snippet="s")])

    async def scrape_article(self, item):
        return ArticleExcerpt(url=item.url, title=item.title, text="body")


class FakeAnalyst:
    def __init__(self, failing=(), slow=(), recs=None):
        self.failing = set(failing)
        self.slow = set(slow)
        self.recs = recs or {}
        self.calls = []

    async def analyze(self, ticker, company_name, current, baseline, articles):
        self.calls.append((ticker, current, baseline))
        if ticker in self.slow:
            await asyncio.sleep(5)
        if ticker in self.failing:
            return Result.fallback(fallback_analysis(ticker), ErrorKind.LLM_FAILURE, "boom")
        rec = self.recs.get(ticker, Recommendation.BUY)
        return Result.success(AnalysisResult(recommendation=rec, summary=f"{ticker} looks fine.",
                                             news_urls=[a.url for a in articles]))


class FakeSummarizer:
    def __init__(self):
        self.calls = []

    async def summarize(self, holdings, watchlist, total_value, total_change, change_percent):
        self.calls.append((len(holdings), len(watchlist), total_value, total_change, change_percent))
        return Result.success("Your portfolio held steady.")


def mock_dispatcher(error=None):
    d = MagicMock(spec=EmailDispatcher)
    d.send = AsyncMock(side_effect=error or (lambda digest: DeliveryResult(message_id="msg_1", recipient=digest.recipient)))
    d.render = EmailDispatcher(api_key="re_test").render
    return d
